# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Timezone utilities - every timestamp inside the sync engine is an aware UTC datetime
"""
from datetime import datetime, date
import pytz
from typing import Optional


def utc_now() -> datetime:
    """Get current time in UTC"""
    return datetime.now(pytz.UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert a datetime to aware UTC, assuming naive values are already UTC"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)

    return dt.astimezone(pytz.UTC)


def start_of_day_utc(dt: datetime) -> datetime:
    """Midnight UTC of the day containing dt"""
    dt = ensure_utc(dt)
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def date_to_utc(day: date) -> datetime:
    """Convert a calendar date to midnight UTC"""
    return pytz.UTC.localize(datetime(day.year, day.month, day.day))


def format_rfc3339(dt: datetime) -> str:
    """Format an aware datetime as RFC 3339 with a Z suffix"""
    return ensure_utc(dt).strftime('%Y-%m-%dT%H:%M:%SZ')


def format_utc_time(dt: Optional[datetime]) -> str:
    """Format datetime in UTC for display"""
    if dt is None:
        return "Never"
    return ensure_utc(dt).strftime('%b %d, %Y at %H:%M UTC')


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO 8601 / RFC 3339 timestamp into aware UTC.

    Raises ValueError when the string cannot be parsed.
    """
    if not value:
        raise ValueError("Empty timestamp")

    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    # Graph returns 7 fractional digits, fromisoformat only takes 6
    if '.' in text:
        head, _, tail = text.partition('.')
        digits = ''
        rest = ''
        for i, ch in enumerate(tail):
            if ch.isdigit():
                digits += ch
            else:
                rest = tail[i:]
                break
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"

    return ensure_utc(datetime.fromisoformat(text))


def resolve_timezone(tz_label: Optional[str]):
    """Map a provider timezone label to a pytz zone, falling back to UTC"""
    if not tz_label:
        return pytz.UTC

    # Map Microsoft "Central Standard Time" et al. to pytz zones
    windows_zones = {
        'Eastern': 'America/New_York',
        'Central': 'America/Chicago',
        'Mountain': 'America/Denver',
        'Pacific': 'America/Los_Angeles',
    }
    for label, zone in windows_zones.items():
        if tz_label.startswith(label):
            return pytz.timezone(zone)

    try:
        return pytz.timezone(tz_label)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def parse_graph_datetime(field: dict) -> Optional[datetime]:
    """Convert Microsoft Graph {"dateTime": str, "timeZone": str} into an aware UTC datetime.

    Args:
        field: dict with keys 'dateTime' and 'timeZone'
    Returns:
        datetime in UTC or None if missing.
    """
    if not isinstance(field, dict) or not isinstance(field.get("dateTime"), str):
        return None

    dt_str = field["dateTime"]
    tz_label = field.get("timeZone") or "UTC"
    if not isinstance(tz_label, str):
        tz_label = "UTC"

    text = dt_str[:-1] if dt_str.endswith('Z') else dt_str
    if '.' in text:
        text = text.split('.')[0]

    try:
        naive_dt = datetime.fromisoformat(text)
    except ValueError:
        return None

    # If dt already has tzinfo, just convert to UTC
    if naive_dt.tzinfo is not None:
        return naive_dt.astimezone(pytz.UTC)

    tz = resolve_timezone(tz_label)
    aware_dt = tz.localize(naive_dt)
    return aware_dt.astimezone(pytz.UTC)
