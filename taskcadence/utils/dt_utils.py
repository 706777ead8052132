# File: utils/dt_utils.py
"""Date and time utilities for taskcadence.

Pure Python date/time functions shared by every engine.
Uses standard library: datetime, zoneinfo.

Functions:
    - set_default_timezone / get_default_timezone: Library-wide default zone
    - resolve_timezone: Turn an IANA name or tzinfo into a tzinfo
    - dt_now_utc: Current datetime in UTC
    - as_utc / as_local: Timezone conversion
    - start_of_local_day: Midnight of a datetime's local day
    - dt_parse_date: Parse date strings
    - dt_parse: Normalize datetime inputs to aware datetimes
    - is_date_only: Whether an input carries no time of day
    - dt_to_iso: ISO 8601 UTC rendering used in explanations
    - parse_time_of_day: Parse "HH:MM" fixed times
    - apply_time_of_day: Set the wall-clock time of an instant
    - parse_rrule_datetime / format_rrule_datetime: RFC 5545 DATE-TIME text
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta, tzinfo
import logging
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Module-level logger
_LOGGER = logging.getLogger(__name__)

# ==============================================================================
# Constants (local copies to avoid circular imports)
# These mirror const.py values but are defined locally for purity.
# ==============================================================================

# Default timezone - can be overridden by caller
DEFAULT_TIME_ZONE: tzinfo = ZoneInfo("UTC")

# RFC 5545 DATE / DATE-TIME value patterns
_RRULE_DATETIME_PATTERN = re.compile(
    r"^(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})"
    r"(?:T(?P<hour>\d{2})(?P<minute>\d{2})(?P<second>\d{2})(?P<utc>Z)?)?$"
)
_TIME_OF_DAY_PATTERN = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})$")


# ==============================================================================
# Timezone Configuration
# ==============================================================================


def set_default_timezone(tz: tzinfo | str) -> None:
    """Set the default timezone for all dt_utils functions.

    Args:
        tz: tzinfo object or IANA timezone name

    Raises:
        ValueError: If the timezone name is unknown.
    """
    global DEFAULT_TIME_ZONE  # noqa: PLW0603
    DEFAULT_TIME_ZONE = resolve_timezone(tz)


def get_default_timezone() -> tzinfo:
    """Get the current default timezone.

    Returns:
        The configured default timezone
    """
    return DEFAULT_TIME_ZONE


def resolve_timezone(tz: tzinfo | str | None) -> tzinfo:
    """Resolve a timezone argument to a tzinfo.

    Args:
        tz: tzinfo, IANA name, or None for the default timezone

    Returns:
        The matching tzinfo.

    Raises:
        ValueError: If `tz` is a name that the tz database does not know.
    """
    if tz is None or tz == "":
        return DEFAULT_TIME_ZONE
    if isinstance(tz, tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as err:
        raise ValueError(f"Unknown timezone: {tz}") from err


def timezone_name(tz: tzinfo) -> str:
    """Return a display name for a tzinfo (IANA key when available)."""
    key = getattr(tz, "key", None)
    if key:
        return str(key)
    return str(tz)


# ==============================================================================
# Current Date/Time Functions
# ==============================================================================


def dt_now_utc() -> datetime:
    """Return the current datetime in UTC (timezone-aware).

    Returns:
        Current UTC datetime.
    """
    return datetime.now(UTC)


def as_utc(dt_obj: datetime) -> datetime:
    """Convert a datetime to UTC timezone.

    Args:
        dt_obj: Datetime object; naive values are read in DEFAULT_TIME_ZONE

    Returns:
        Datetime in UTC timezone
    """
    if dt_obj.tzinfo is None:
        # Assume it's in default timezone if naive
        dt_obj = dt_obj.replace(tzinfo=DEFAULT_TIME_ZONE)
    return dt_obj.astimezone(UTC)


def as_local(dt_obj: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert a datetime to local timezone.

    Args:
        dt_obj: Datetime object; naive values are assumed to be UTC
        tz: Optional timezone override. Uses DEFAULT_TIME_ZONE if not provided.

    Returns:
        Datetime in local timezone
    """
    tz_info = tz or DEFAULT_TIME_ZONE
    if dt_obj.tzinfo is None:
        # Assume it's in UTC if naive
        dt_obj = dt_obj.replace(tzinfo=UTC)
    return dt_obj.astimezone(tz_info)


def start_of_local_day(dt_obj: datetime, tz: tzinfo | None = None) -> datetime:
    """Get the start of day (00:00:00) for a datetime in local timezone.

    Args:
        dt_obj: Datetime object (can be in any timezone)
        tz: Optional timezone override. Uses DEFAULT_TIME_ZONE if not provided.

    Returns:
        Datetime at 00:00:00 in local timezone (timezone-aware)
    """
    tz_info = tz or DEFAULT_TIME_ZONE

    # Convert to local timezone first
    local_dt = as_local(dt_obj, tz_info)

    # Get start of day by replacing time components
    return local_dt.replace(hour=0, minute=0, second=0, microsecond=0)


# ==============================================================================
# Date/Time Parsing
# ==============================================================================


def dt_parse_date(date_str: str | None) -> date | None:
    """Safely parse a date string into a `datetime.date`.

    Accepts formats:
    - "2025-04-07" (ISO format)
    - "04/07/2025" (US format)
    - "2025/04/07"

    Args:
        date_str: Date string to parse, or None

    Returns:
        datetime.date or None if parsing fails.
    """
    if not date_str or not isinstance(date_str, str):
        return None

    # Try ISO format first (most common)
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        pass

    # Try common formats
    for fmt in ("%m/%d/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    return None


def dt_parse(
    dt_input: str | date | datetime | None,
    default_tzinfo: tzinfo | None = None,
) -> datetime | None:
    """Normalize various datetime input formats to an aware datetime.

    Args:
        dt_input: String, date or datetime to normalize, or None
        default_tzinfo: Timezone to use if the input is naive
                        (defaults to DEFAULT_TIME_ZONE if None)

    Returns:
        Timezone-aware datetime, or None if the input could not be parsed.

    Example:
        >>> dt_parse("2025-04-15", ZoneInfo("America/New_York"))
        datetime.datetime(2025, 4, 15, 0, 0, tzinfo=ZoneInfo('America/New_York'))
    """
    # Handle empty input
    if not dt_input:
        return None

    # Set default timezone if not specified
    tz_info = default_tzinfo or DEFAULT_TIME_ZONE

    result: datetime | None = None

    # Handle string inputs
    if isinstance(dt_input, str):
        text = dt_input.strip()
        try:
            # Try ISO format parsing
            result = datetime.fromisoformat(text)
        except ValueError:
            # If datetime parsing fails, try to parse as a date
            parsed_date = dt_parse_date(text)
            if parsed_date:
                result = datetime.combine(parsed_date, datetime.min.time())
            else:
                return None

    # Handle datetime objects
    elif isinstance(dt_input, datetime):
        result = dt_input

    # Handle date objects
    elif isinstance(dt_input, date):
        result = datetime.combine(dt_input, datetime.min.time())

    else:
        # Unsupported input type
        return None

    # Ensure timezone awareness
    if result.tzinfo is None:
        result = result.replace(tzinfo=tz_info)

    return result


def is_date_only(dt_input: str | date | datetime | None) -> bool:
    """Return True for a plain date or a date string with no time part."""
    if isinstance(dt_input, datetime):
        return False
    if isinstance(dt_input, date):
        return True
    if isinstance(dt_input, str):
        return dt_parse_date(dt_input.strip()) is not None
    return False


def dt_to_iso(dt_obj: datetime) -> str:
    """Render an instant as an ISO 8601 UTC string ("...+00:00")."""
    return as_utc(dt_obj).isoformat()


# ==============================================================================
# Fixed Time-of-Day
# ==============================================================================


def parse_time_of_day(time_str: str | None) -> tuple[int, int] | None:
    """Parse a fixed time of day in HH:MM format.

    Args:
        time_str: Time string such as "09:30" or "7:05"

    Returns:
        (hour, minute) tuple, or None if the value is missing or invalid.
    """
    if not time_str or not isinstance(time_str, str):
        return None

    match = _TIME_OF_DAY_PATTERN.match(time_str.strip())
    if not match:
        _LOGGER.warning("Invalid fixed time format: %s (expected HH:MM)", time_str)
        return None

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))

    # Validate hour/minute ranges
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        _LOGGER.warning("Invalid fixed time value: %s (out of range)", time_str)
        return None

    return hour, minute


def apply_time_of_day(
    dt_obj: datetime, hour: int, minute: int, tz: tzinfo | None = None
) -> datetime:
    """Set the wall-clock time of an instant on its local calendar day.

    The calendar day is taken in `tz`, the new time is applied in `tz`, and
    the result is returned in UTC.

    Args:
        dt_obj: Instant whose date is kept
        hour: Hour to apply (0-23)
        minute: Minute to apply (0-59)
        tz: Timezone for the calendar day. Uses DEFAULT_TIME_ZONE if not provided.

    Returns:
        UTC datetime at hour:minute local time on the same local day.
    """
    tz_info = tz or DEFAULT_TIME_ZONE
    local_day = as_local(dt_obj, tz_info).date()
    local_dt = datetime.combine(local_day, time(hour, minute), tzinfo=tz_info)
    return as_utc(local_dt)


# ==============================================================================
# RFC 5545 DATE-TIME values
# ==============================================================================


def parse_rrule_datetime(value: str) -> tuple[datetime, bool]:
    """Parse an RFC 5545 DATE or DATE-TIME value.

    Accepts "YYYYMMDD", "YYYYMMDDTHHMMSS" (floating) and "YYYYMMDDTHHMMSSZ"
    (UTC). Floating values are returned naive; the caller localizes them.

    Args:
        value: The textual value (e.g. "20240101T000000Z")

    Returns:
        Tuple of (datetime, is_date_only).

    Raises:
        ValueError: If the value is not a valid DATE or DATE-TIME.
    """
    match = _RRULE_DATETIME_PATTERN.match(value.strip().upper())
    if not match:
        raise ValueError(f"Invalid date-time value: {value}")

    parts = match.groupdict()
    year, month, day = int(parts["year"]), int(parts["month"]), int(parts["day"])

    if parts["hour"] is None:
        return datetime(year, month, day), True

    result = datetime(
        year,
        month,
        day,
        int(parts["hour"]),
        int(parts["minute"]),
        int(parts["second"]),
    )
    if parts["utc"]:
        result = result.replace(tzinfo=UTC)
    return result, False


def format_rrule_datetime(dt_obj: datetime) -> str:
    """Format an instant as an RFC 5545 UTC DATE-TIME ("YYYYMMDDTHHMMSSZ")."""
    return as_utc(dt_obj).strftime("%Y%m%dT%H%M%SZ")


def localize_rrule_datetime(
    value: datetime, date_only: bool, tz: tzinfo | None = None
) -> datetime:
    """Turn a parsed DATE / DATE-TIME into an aware datetime.

    Floating values are read in `tz`. A DATE covers its whole local day, so
    it resolves to the last second of that day.

    Args:
        value: Result of parse_rrule_datetime()
        date_only: Whether the value was a DATE
        tz: Timezone for floating values. Uses DEFAULT_TIME_ZONE if not provided.

    Returns:
        Timezone-aware datetime.
    """
    tz_info = tz or DEFAULT_TIME_ZONE
    if date_only:
        end_of_day = value + timedelta(days=1, seconds=-1)
        return end_of_day.replace(tzinfo=tz_info)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz_info)
    return value
