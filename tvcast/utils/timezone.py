"""
Date and Time utilities

This module handles all date/time conversions used by the guide parser, the
record store and the staleness policy. Programme instants are always stored as
UTC and must agree whether read from the ISO string or the epoch field.
"""
from datetime import datetime, timedelta, timezone
import logging


logger = logging.getLogger(__name__)


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600' (offset optional)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the timestamp part is shorter than 14 digits or not a date
    """
    parts = time_str.strip().split()
    if not parts or len(parts[0]) < 14:
        raise DateFormatError(f"Invalid XMLTV date string: '{time_str}'")

    time_part = parts[0][:14]  # YYYYMMDDHHMMSS
    tz_part = parts[1] if len(parts) > 1 else "+0000"

    try:
        dt = datetime.strptime(time_part, "%Y%m%d%H%M%S")
    except ValueError as e:
        raise DateFormatError(f"Invalid XMLTV date string: '{time_str}'") from e

    # Parse timezone offset (+/-HHMM)
    tz_sign = -1 if tz_part[0] == "-" else 1
    digits = tz_part.lstrip("+-")
    try:
        tz_hours = int(digits[0:2] or 0)
        tz_mins = int(digits[2:4] or 0)
    except ValueError as e:
        raise DateFormatError(f"Invalid XMLTV timezone offset: '{tz_part}'") from e
    tz_offset_minutes = tz_sign * (tz_hours * 60 + tz_mins)

    dt_utc = dt - timedelta(minutes=tz_offset_minutes)

    return dt_utc.replace(tzinfo=timezone.utc)


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-10-09T00:00:00Z' or '2025-10-09T00:00:00+01:00')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = date_str.replace("Z", "+00:00") if date_str.endswith("Z") else date_str
        dt = datetime.fromisoformat(normalized)
        return ensure_utc(dt)
    except (ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_seconds(dt: datetime) -> int:
    """Whole epoch seconds for a datetime, naive values treated as UTC."""
    return int(ensure_utc(dt).timestamp())


def from_epoch_seconds(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def format_utc(dt: datetime) -> str:
    """ISO8601 with a trailing 'Z', e.g. '2024-01-01T10:00:00Z'."""
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
