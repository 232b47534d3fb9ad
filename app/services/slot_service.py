from collections.abc import Iterable
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import local_to_naive_utc
from app.models.slot_template import SlotTemplateEntry


def js_day_of_week(d: date) -> int:
    """0 = Sunday ... 6 = Saturday, the convention slot templates are stored in."""
    return (d.weekday() + 1) % 7


async def list_weekly_entries(session: AsyncSession, service_id: int) -> list[SlotTemplateEntry]:
    result = await session.execute(
        select(SlotTemplateEntry)
        .where(
            SlotTemplateEntry.service_id == service_id,
            SlotTemplateEntry.is_available.is_(True),
            SlotTemplateEntry.start_at.is_(None),
        )
        .order_by(SlotTemplateEntry.day_of_week, SlotTemplateEntry.start_time)
    )
    return list(result.scalars().all())


async def list_anchored_entries(
    session: AsyncSession, service_id: int, start_inclusive: datetime, end_exclusive: datetime
) -> list[SlotTemplateEntry]:
    """Date-anchored entries in range, including disabled ones (they act as blackouts)."""
    result = await session.execute(
        select(SlotTemplateEntry)
        .where(
            SlotTemplateEntry.service_id == service_id,
            SlotTemplateEntry.start_at.is_not(None),
            SlotTemplateEntry.start_at >= start_inclusive,
            SlotTemplateEntry.start_at < end_exclusive,
        )
        .order_by(SlotTemplateEntry.start_at)
    )
    return list(result.scalars().all())


def expand_template(
    weekly: Iterable[SlotTemplateEntry],
    anchored: Iterable[SlotTemplateEntry],
    first_day: date,
    last_day: date,
    tz: ZoneInfo,
) -> list[datetime]:
    """Candidate slot starts (naive UTC, ascending) for clinic-local days first_day..last_day.

    A date-anchored entry overrides the weekly pattern at its exact instant: an available one
    adds the instant, a disabled one removes it (and wins over an available anchored twin).
    """
    by_day: dict[int, list[SlotTemplateEntry]] = {}
    for entry in weekly:
        if entry.is_available and entry.day_of_week is not None and entry.start_time is not None:
            by_day.setdefault(entry.day_of_week, []).append(entry)

    candidates: set[datetime] = set()
    d = first_day
    while d <= last_day:
        for entry in by_day.get(js_day_of_week(d), []):
            candidates.add(local_to_naive_utc(d, entry.start_time, tz))
        d += timedelta(days=1)

    blocked: set[datetime] = set()
    for entry in anchored:
        if entry.start_at is None:
            continue
        if entry.is_available:
            candidates.add(entry.start_at)
        else:
            blocked.add(entry.start_at)

    return sorted(candidates - blocked)
