"""
Time helpers shared by the engine and reports.

All stored timestamps are UTC. Branch-local calendar dates (business day,
daily buckets) are derived with the branch's IANA zone.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime to aware UTC.

    SQLite returns naive datetimes even for DateTime(timezone=True) columns;
    naive values are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def branch_zone(name: str | None) -> ZoneInfo:
    """
    Resolve a branch time zone, falling back to the configured default.
    """
    try:
        return ZoneInfo(name or settings.default_branch_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "Unknown branch timezone, using default",
            timezone=name,
            default=settings.default_branch_timezone,
        )
        return ZoneInfo(settings.default_branch_timezone)


def local_date(value: datetime, tz: ZoneInfo) -> date:
    """Calendar date of `value` in `tz`."""
    return ensure_utc(value).astimezone(tz).date()


def local_day_bounds(start_date: date, end_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """
    UTC half-open interval covering the inclusive local dates [start_date, end_date].
    """
    starts_at = datetime.combine(start_date, time.min, tzinfo=tz)
    ends_at = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz)
    return starts_at.astimezone(timezone.utc), ends_at.astimezone(timezone.utc)


def whole_seconds(delta: timedelta) -> int:
    """Whole seconds of `delta`, clamped to >= 0."""
    return max(0, int(delta.total_seconds()))
