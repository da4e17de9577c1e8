"""
Timezone helpers.

Deadlines entered without an offset are Singapore wall-clock times; everything
else is normalised to UTC before it reaches the database.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

SGT = timezone(timedelta(hours=8), name="SGT")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def convert_datetime_to_utc(dt) -> Optional[datetime]:
    """Convert datetime to UTC timezone-aware datetime"""
    if dt is None:
        return None

    if isinstance(dt, datetime):
        if dt.tzinfo is None:
            # Naive datetime read back from the database, assume UTC
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    return dt


def parse_iso_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware UTC datetime.

    A trailing ``Z`` is accepted. Strings without an offset are taken as SGT;
    naive datetimes come from the database and are taken as UTC.
    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return convert_datetime_to_utc(value)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=SGT)
    return parsed.astimezone(timezone.utc)


def to_sgt_string(value: Union[str, datetime, None]) -> Optional[str]:
    """Render a deadline as an ISO string carrying the +08:00 offset."""
    parsed = parse_iso_datetime(value)
    if parsed is None:
        return None
    return parsed.astimezone(SGT).isoformat()


def format_date_to_sgt(value: Union[str, datetime, None]) -> Optional[str]:
    """Format like ``Oct 30, 2025 03:30 PM (SGT)``; None for invalid input."""
    parsed = parse_iso_datetime(value)
    if parsed is None:
        return None
    return parsed.astimezone(SGT).strftime("%b %d, %Y %I:%M %p") + " (SGT)"
