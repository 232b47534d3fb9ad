from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def utc_naive_now() -> datetime:
    """Naive UTC for comparison with TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns. Naive input is taken as UTC."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def local_to_naive_utc(d: date, t: time, tz: ZoneInfo) -> datetime:
    """Clinic wall-clock (d, t) as a naive UTC instant."""
    return datetime.combine(d, t, tzinfo=tz).astimezone(UTC).replace(tzinfo=None)


def naive_utc_to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    return dt.replace(tzinfo=UTC).astimezone(tz)


def local_day_bounds(first_day: date, last_day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """[start of first_day, start of the day after last_day) in clinic time, as naive UTC."""
    start = local_to_naive_utc(first_day, time.min, tz)
    end = local_to_naive_utc(last_day + timedelta(days=1), time.min, tz)
    return start, end


def local_today(tz: ZoneInfo, now_utc: datetime | None = None) -> date:
    now = now_utc if now_utc is not None else utc_naive_now()
    return naive_utc_to_local(now, tz).date()
