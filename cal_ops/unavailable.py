# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Apple and CalDAV providers - declared but not yet live integrations
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from cal_ops.errors import ExternalCalendarPermanentError
from cal_ops.http import caldav_auth_header
from cal_ops.ical_parser import build_calendar_query, parse_caldav_multistatus
from cal_ops.providers import CalendarProvider
from models import CalendarProviderName, ErrorCode, ExternalCalendarEvent

logger = logging.getLogger(__name__)


class UnavailableCalendarProvider(CalendarProvider):
    """Fails fast with a permanent error instead of returning an empty success"""

    display_name = ""

    def _fetch_events(self, access_token: str, from_date: datetime, to_date: datetime) -> List[Dict]:
        message = f"{self.display_name} calendar integration is not yet available"
        logger.warning(message)
        raise ExternalCalendarPermanentError(self.name, message, error_code=ErrorCode.NOT_AVAILABLE.value)

    def _normalize_event(self, event: Dict) -> Optional[ExternalCalendarEvent]:
        return None


class AppleCalendarProvider(UnavailableCalendarProvider):
    name = CalendarProviderName.APPLE.value
    display_name = "Apple"


class CalDAVCalendarProvider(UnavailableCalendarProvider):
    """CalDAV is not wired to a live server yet; the REPORT helpers are ready for it"""

    name = CalendarProviderName.CALDAV.value
    display_name = "CalDAV"

    @staticmethod
    def report_headers(access_token: str) -> Dict[str, str]:
        return {
            'Authorization': caldav_auth_header(access_token),
            'Content-Type': 'application/xml; charset=utf-8',
            'Depth': '1',
        }

    @staticmethod
    def report_body(from_date: datetime, to_date: datetime) -> str:
        return build_calendar_query(from_date, to_date)

    @staticmethod
    def parse_report(xml_text: str) -> List[ExternalCalendarEvent]:
        return parse_caldav_multistatus(xml_text)
