"""
Timezone conversion and formatting utilities.

All timestamps are stored in UTC; these helpers render them in the
facility's local zone for SMS text and "today" queries.
"""

from datetime import datetime, timezone

import pytz


def to_local(utc_dt: datetime, tz_name: str) -> datetime:
    """
    Convert a UTC datetime to the given zone.

    Naive datetimes are treated as UTC. Unknown zone names fall back to UTC.
    """
    # Ensure datetime is timezone-aware (treat naive as UTC)
    if utc_dt.tzinfo is None:
        utc_dt = pytz.UTC.localize(utc_dt)

    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC
    return utc_dt.astimezone(tz)


def format_date_in_timezone(utc_dt: datetime, tz_name: str) -> str:
    """
    Format a UTC datetime as a long date in the local timezone.

    Returns:
        Formatted string like "Sunday, June 1"
    """
    local_dt = to_local(utc_dt, tz_name)
    return f"{local_dt.strftime('%A, %B')} {local_dt.day}"


def format_short_date_in_timezone(utc_dt: datetime, tz_name: str) -> str:
    """Format as "June 1" in the local timezone."""
    local_dt = to_local(utc_dt, tz_name)
    return f"{local_dt.strftime('%B')} {local_dt.day}"


def format_time_in_timezone(utc_dt: datetime, tz_name: str) -> str:
    """Format as "10:00 AM" in the local timezone."""
    local_dt = to_local(utc_dt, tz_name)
    return local_dt.strftime("%I:%M %p").lstrip("0")  # "3:00 PM" not "03:00 PM"


def local_day_start_utc(tz_name: str, now: datetime | None = None) -> datetime:
    """
    Return local midnight of the current day, expressed in UTC.

    Used for "today's check-ins" at the facility regardless of server zone.
    """
    now = now or datetime.now(timezone.utc)
    local_now = to_local(now, tz_name)
    tz = local_now.tzinfo
    naive_midnight = local_now.replace(
        hour=0, minute=0, second=0, microsecond=0, tzinfo=None
    )
    # pytz zones need localize() to pick the right DST offset
    if hasattr(tz, "localize"):
        local_midnight = tz.localize(naive_midnight)
    else:
        local_midnight = naive_midnight.replace(tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)
