"""
Time handling for scheduling, cooldowns and ledger timestamps.

The ledger stores UTC ISO8601 strings. Scheduling windows and the
once-per-day event cooldown are evaluated in a fixed-offset reporting
timezone so behaviour does not depend on the host clock configuration.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

DEFAULT_REPORTING_OFFSET_HOURS = 9


def utc_now(now: Optional[datetime] = None) -> datetime:
    """
    Return the effective current time in UTC.

    Args:
        now: Injected time; naive values are treated as UTC

    Returns:
        Timezone-aware UTC datetime
    """
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def reporting_timezone(offset_hours: int = DEFAULT_REPORTING_OFFSET_HOURS) -> timezone:
    return timezone(timedelta(hours=offset_hours))


def to_reporting_time(dt: datetime, offset_hours: int = DEFAULT_REPORTING_OFFSET_HOURS) -> datetime:
    """
    Convert a timestamp into the reporting timezone.

    Args:
        dt: Timestamp to convert; naive values are treated as UTC
        offset_hours: Fixed UTC offset of the reporting timezone

    Returns:
        Timezone-aware datetime in the reporting timezone
    """
    return utc_now(dt).astimezone(reporting_timezone(offset_hours))


def reporting_date(dt: datetime, offset_hours: int = DEFAULT_REPORTING_OFFSET_HOURS) -> str:
    """Calendar date (YYYY-MM-DD) of `dt` in the reporting timezone."""
    return to_reporting_time(dt, offset_hours).date().isoformat()


def to_epoch_seconds(dt: datetime) -> int:
    return int(utc_now(dt).timestamp())


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes, ISO8601 strings (with or without a trailing Z) and
    epoch seconds. Anything else, including unparsable strings, yields None.

    Args:
        value: Raw timestamp value from the ledger

    Returns:
        UTC datetime or None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return utc_now(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return utc_now(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def format_timestamp(dt: datetime) -> str:
    """
    Format a timestamp for storage.

    Args:
        dt: Timestamp to format

    Returns:
        ISO8601 UTC string
    """
    return utc_now(dt).isoformat()


def elapsed_seconds(start_time: datetime, end_time: Optional[datetime] = None) -> float:
    """
    Calculate elapsed time in seconds between two timestamps.

    Args:
        start_time: Start timestamp
        end_time: End timestamp, defaults to now

    Returns:
        Elapsed time in seconds
    """
    return (utc_now(end_time) - utc_now(start_time)).total_seconds()
