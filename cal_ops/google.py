# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Google Calendar v3 provider
"""
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

import config
from cal_ops.errors import ExternalCalendarPermanentError
from cal_ops.http import ProviderHttpClient, bearer_headers
from cal_ops.providers import CalendarProvider
from models import CalendarProviderName, ErrorCode, ExternalCalendarEvent
from utils.timezone import date_to_utc, format_rfc3339, parse_iso_datetime

logger = logging.getLogger(__name__)


def parse_google_time(field: Optional[Dict]) -> Optional[datetime]:
    """Parse a Google {"dateTime": ...} or all-day {"date": "YYYY-MM-DD"} field"""
    if not isinstance(field, dict):
        return None

    if isinstance(field.get('dateTime'), str):
        try:
            return parse_iso_datetime(field['dateTime'])
        except ValueError:
            logger.warning(f"Unparseable Google dateTime: {field.get('dateTime')}")

    # All-day events only carry a date
    if isinstance(field.get('date'), str):
        try:
            return date_to_utc(date.fromisoformat(field['date']))
        except ValueError:
            logger.warning(f"Unparseable Google date: {field.get('date')}")

    return None


class GoogleCalendarProvider(CalendarProvider):
    """Reads the primary calendar of the token owner"""

    name = CalendarProviderName.GOOGLE.value

    def __init__(self, client_factory=None):
        self.http = ProviderHttpClient(self.name, client_factory)

    def _fetch_events(self, access_token: str, from_date: datetime, to_date: datetime) -> List[Dict]:
        params = {
            'timeMin': format_rfc3339(from_date),
            'timeMax': format_rfc3339(to_date),
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'maxResults': config.PROVIDER_MAX_RESULTS,
        }

        data = self.http.get_json(config.GOOGLE_EVENTS_URL, bearer_headers(access_token), params)

        items = data.get('items')
        if items is None:
            items = []
            if data.get('kind') != 'calendar#events':
                raise ExternalCalendarPermanentError(
                    self.name,
                    "Google API response has no 'items' list",
                    calendar_id='primary',
                    error_code=ErrorCode.MALFORMED_RESPONSE.value
                )
        if not isinstance(items, list):
            raise ExternalCalendarPermanentError(
                self.name,
                "Google API response 'items' is not a list",
                calendar_id='primary',
                error_code=ErrorCode.MALFORMED_RESPONSE.value
            )

        logger.info(f"Retrieved {len(items)} Google events between {params['timeMin']} and {params['timeMax']}")
        return items

    def _normalize_event(self, event: Dict) -> Optional[ExternalCalendarEvent]:
        if not isinstance(event, dict):
            return None

        event_id = event.get('id')
        if not event_id:
            logger.warning(f"Skipping Google event without id: {event.get('summary')}")
            return None

        start_time = parse_google_time(event.get('start'))
        if start_time is None:
            logger.warning(f"Skipping Google event {event_id} without a usable start time")
            return None

        return ExternalCalendarEvent(
            id=event_id,
            title=event.get('summary') or "",
            start_time=start_time,
            end_time=parse_google_time(event.get('end')),
            location=event.get('location') or "",
            description=event.get('description') or "",
        )
