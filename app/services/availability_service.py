import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import local_day_bounds, local_today, naive_utc_to_local, utc_naive_now
from app.core.errors import InvalidRange
from app.services.appointment_service import get_booked_slot_starts
from app.services.catalog_service import get_active_service
from app.services.slot_service import expand_template, list_anchored_entries, list_weekly_entries
from app.services.voyager_gateway import RemoteDayAvailability, RemoteSchedulingGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedSlot:
    time: str  # clinic-local HH:MM
    available: bool
    start_utc: datetime  # naive UTC


@dataclass
class ResolvedDaySlots:
    date: date
    slots: list[ResolvedSlot] = field(default_factory=list)


def _group_by_local_day(
    slots: Iterable[tuple[datetime, bool]], tz: ZoneInfo
) -> list[ResolvedDaySlots]:
    days: dict[date, list[ResolvedSlot]] = {}
    for start_utc, available in sorted(slots, key=lambda s: s[0]):
        local = naive_utc_to_local(start_utc, tz)
        days.setdefault(local.date(), []).append(
            ResolvedSlot(time=local.strftime("%H:%M"), available=available, start_utc=start_utc)
        )
    return [ResolvedDaySlots(date=d, slots=days[d]) for d in sorted(days) if days[d]]


class AvailabilityResolver:
    """Bookable slots for a service over a clinic-local date range.

    Voyager is asked first when a gateway is configured and trusted as-is. Any gateway
    failure falls back to the local computation: template slots minus active bookings,
    with already-started slots marked unavailable. Nothing is cached between calls.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        gateway: RemoteSchedulingGateway | None,
        clinic_tz: ZoneInfo,
        clock: Callable[[], datetime] = utc_naive_now,
        max_range_days: int | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._gateway = gateway
        self._tz = clinic_tz
        self._clock = clock
        self._max_range_days = max_range_days

    async def resolve(self, service_id: int, date_from: date, date_to: date) -> list[ResolvedDaySlots]:
        if date_from > date_to:
            raise InvalidRange(date_from=date_from.isoformat(), date_to=date_to.isoformat())
        if self._max_range_days is not None and (date_to - date_from).days > self._max_range_days:
            raise InvalidRange(
                f"Date range must not exceed {self._max_range_days} days",
                date_from=date_from.isoformat(),
                date_to=date_to.isoformat(),
            )

        async with self._session_maker() as session:
            await get_active_service(session, service_id)

        if self._gateway is not None:
            try:
                remote_days = await self._gateway.get_availability(service_id, date_from, date_to)
            except Exception as e:
                logger.warning(
                    "Voyager availability failed for service %s (%s..%s), using local slots: %s",
                    service_id, date_from, date_to, e,
                )
            else:
                return self._from_remote(remote_days, date_from, date_to)

        return await self.resolve_locally(service_id, date_from, date_to)

    def _from_remote(
        self, remote_days: list[RemoteDayAvailability], date_from: date, date_to: date
    ) -> list[ResolvedDaySlots]:
        """Voyager is authoritative: keep its available slots, limited to the range and the future."""
        now = self._clock()
        open_slots = {
            slot.start_utc
            for day in remote_days
            for slot in day.slots
            if slot.available
            and slot.start_utc > now
            and date_from <= naive_utc_to_local(slot.start_utc, self._tz).date() <= date_to
        }
        return _group_by_local_day(((s, True) for s in open_slots), self._tz)

    async def resolve_locally(
        self, service_id: int, date_from: date, date_to: date
    ) -> list[ResolvedDaySlots]:
        now = self._clock()
        first_day = max(date_from, local_today(self._tz, now))
        if first_day > date_to:
            return []
        range_start, range_end = local_day_bounds(first_day, date_to, self._tz)

        async with self._session_maker() as session:
            weekly = await list_weekly_entries(session, service_id)
            anchored = await list_anchored_entries(session, service_id, range_start, range_end)
            booked = await get_booked_slot_starts(session, service_id, range_start, range_end)

        candidates = expand_template(weekly, anchored, first_day, date_to, self._tz)
        return _group_by_local_day(
            ((start, start not in booked and start > now) for start in candidates), self._tz
        )
