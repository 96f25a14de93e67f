# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
iCalendar (RFC 5545) VEVENT extraction and CalDAV multistatus reader
"""
import logging
import xml.etree.ElementTree as ET
from datetime import date, datetime
from typing import List, Optional

from icalendar import Calendar, vDDDTypes

from models import ExternalCalendarEvent
from utils.timezone import date_to_utc, ensure_utc

logger = logging.getLogger(__name__)

DAV_NS = "DAV:"
CALDAV_NS = "urn:ietf:params:xml:ns:caldav"


def to_utc(value) -> datetime:
    """Normalize a decoded DTSTART/DTEND value.

    Dates become midnight UTC, floating times are taken as UTC and zoned
    times are converted. Anything else raises ValueError.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return date_to_utc(value)
    raise ValueError(f"Not an iCalendar date or date-time: {value!r}")


def parse_ical_datetime(value: str, tzid: Optional[str] = None) -> datetime:
    """Parse a DATE or DATE-TIME value, optionally in a TZID zone, into aware UTC"""
    try:
        decoded = vDDDTypes.from_ical(value.strip(), timezone=tzid)
    except ValueError as e:
        raise ValueError(f"Invalid iCalendar date-time: {value!r}") from e
    return to_utc(decoded)


def _text(component, name: str) -> str:
    value = component.get(name)
    return str(value).strip() if value is not None else ""


def _event_from_component(vevent) -> Optional[ExternalCalendarEvent]:
    uid = _text(vevent, 'UID')
    summary = _text(vevent, 'SUMMARY')
    dtstart = vevent.get('DTSTART')

    if not uid or not summary or dtstart is None:
        present = {'uid': uid, 'summary': summary, 'dtstart': dtstart is not None}
        missing = [name for name, found in present.items() if not found]
        logger.warning(f"Dropping VEVENT {uid or '<no uid>'}: missing {', '.join(missing)}")
        return None

    try:
        start_time = to_utc(getattr(dtstart, 'dt', None))
        dtend = vevent.get('DTEND')
        end_time = to_utc(getattr(dtend, 'dt', None)) if dtend is not None else None
    except ValueError as e:
        logger.warning(f"Dropping VEVENT {uid}: {e}")
        return None

    return ExternalCalendarEvent(
        id=uid,
        title=summary,
        start_time=start_time,
        end_time=end_time,
        location=_text(vevent, 'LOCATION'),
        description=_text(vevent, 'DESCRIPTION'),
    )


def parse_vevents(text: Optional[str]) -> List[ExternalCalendarEvent]:
    """Extract every well-formed VEVENT from iCalendar text.

    Properties of nested components (VALARM) are ignored. A VEVENT lacking
    UID, SUMMARY or a usable DTSTART is dropped without affecting the others.
    Raises ValueError when the text is not iCalendar at all.
    """
    if not text or not text.strip():
        return []

    events: List[ExternalCalendarEvent] = []
    for component in Calendar.from_ical(text, multiple=True):
        for vevent in component.walk('VEVENT'):
            event = _event_from_component(vevent)
            if event is not None:
                events.append(event)
    return events


def parse_caldav_multistatus(xml_text: str) -> List[ExternalCalendarEvent]:
    """Parse a CalDAV REPORT multistatus response into events.

    Raises ValueError when the XML itself is malformed. A resource whose
    calendar data cannot be parsed is skipped.
    """
    try:
        root = ET.fromstring(xml_text.strip())
    except ET.ParseError as e:
        raise ValueError(f"Malformed CalDAV response: {e}") from e

    events: List[ExternalCalendarEvent] = []
    for response in root.iter(f'{{{DAV_NS}}}response'):
        href = response.findtext(f'{{{DAV_NS}}}href', default='')
        for propstat in response.findall(f'{{{DAV_NS}}}propstat'):
            status = propstat.findtext(f'{{{DAV_NS}}}status', default='')
            if status and ' 200 ' not in f"{status} ":
                logger.debug(f"Skipping propstat for {href} with status {status}")
                continue
            for data in propstat.iter(f'{{{CALDAV_NS}}}calendar-data'):
                if not data.text:
                    continue
                try:
                    events.extend(parse_vevents(data.text))
                except ValueError as e:
                    logger.warning(f"Skipping unparseable calendar data at {href}: {e}")

    logger.info(f"Parsed {len(events)} events from CalDAV response")
    return events


def build_calendar_query(from_date: datetime, to_date: datetime) -> str:
    """Build a CalDAV calendar-query REPORT body for a time range"""
    start = ensure_utc(from_date).strftime('%Y%m%dT%H%M%SZ')
    end = ensure_utc(to_date).strftime('%Y%m%dT%H%M%SZ')
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<C:calendar-query xmlns:D="{DAV_NS}" xmlns:C="{CALDAV_NS}">\n'
        '  <D:prop>\n'
        '    <D:getetag/>\n'
        '    <C:calendar-data/>\n'
        '  </D:prop>\n'
        '  <C:filter>\n'
        '    <C:comp-filter name="VCALENDAR">\n'
        '      <C:comp-filter name="VEVENT">\n'
        f'        <C:time-range start="{start}" end="{end}"/>\n'
        '      </C:comp-filter>\n'
        '    </C:comp-filter>\n'
        '  </C:filter>\n'
        '</C:calendar-query>'
    )
