"""
Timezone Utilities.

Golden Rules:
1. Database: Always store UTC
2. Comparisons: Always compare timezone-aware datetimes
3. Local wall-clock time only for restriction windows (allowed hours/days)

SQLite returns naive datetimes even for DateTime(timezone=True) columns,
so anything read back from storage goes through to_utc() before comparing.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

# UTC constant
UTC = timezone.utc


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime, source_tz: Optional[str] = None) -> datetime:
    """
    Convert datetime to UTC.

    Args:
        dt: Datetime to convert
        source_tz: Source timezone if dt is naive (UTC assumed otherwise)
    """
    if dt.tzinfo is None:
        if source_tz:
            dt = dt.replace(tzinfo=ZoneInfo(source_tz))
        else:
            dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def from_utc(dt: datetime, target_tz: str) -> datetime:
    """Convert a UTC (or naive-as-UTC) datetime to the target timezone."""
    return to_utc(dt).astimezone(ZoneInfo(target_tz))


def day_of_week(dt: datetime) -> int:
    """Day of week with Sunday=0 ... Saturday=6."""
    return (dt.weekday() + 1) % 7


def is_valid_timezone(tz_name: str) -> bool:
    """Check if timezone name is valid."""
    try:
        ZoneInfo(tz_name)
        return True
    except Exception:
        return False
