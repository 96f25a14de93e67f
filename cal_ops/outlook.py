# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Outlook provider - reads /me/events from Microsoft Graph
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

import config
from cal_ops.errors import ExternalCalendarPermanentError
from cal_ops.http import ProviderHttpClient, bearer_headers
from cal_ops.providers import CalendarProvider
from models import CalendarProviderName, ErrorCode, ExternalCalendarEvent
from utils.timezone import ensure_utc, parse_graph_datetime

logger = logging.getLogger(__name__)

SELECT_FIELDS = ['id', 'subject', 'start', 'end', 'location', 'bodyPreview', 'isAllDay', 'isCancelled']


def _graph_filter_time(dt: datetime) -> str:
    return ensure_utc(dt).strftime('%Y-%m-%dT%H:%M:%S')


class OutlookCalendarProvider(CalendarProvider):
    """Microsoft Graph calendar provider"""

    name = CalendarProviderName.OUTLOOK.value

    def __init__(self, client_factory=None):
        self.http = ProviderHttpClient(self.name, client_factory)

    def _fetch_events(self, access_token: str, from_date: datetime, to_date: datetime) -> List[Dict]:
        params = {
            '$filter': (
                f"start/dateTime ge '{_graph_filter_time(from_date)}' "
                f"and end/dateTime le '{_graph_filter_time(to_date)}'"
            ),
            '$orderby': 'start/dateTime',
            '$select': ','.join(SELECT_FIELDS),
            '$top': config.PROVIDER_MAX_RESULTS,
        }

        headers = bearer_headers(access_token)
        # Ask Graph to report start/end in UTC
        headers['Prefer'] = 'outlook.timezone="UTC"'

        data = self.http.get_json(config.OUTLOOK_EVENTS_URL, headers, params)

        events = data.get('value')
        if not isinstance(events, list):
            raise ExternalCalendarPermanentError(
                self.name,
                "Microsoft Graph response has no 'value' list",
                error_code=ErrorCode.MALFORMED_RESPONSE.value
            )

        if data.get('@odata.nextLink'):
            logger.info(f"Outlook returned more than {config.PROVIDER_MAX_RESULTS} events; "
                        f"only the first page is synced")

        logger.info(f"Retrieved {len(events)} Outlook events")
        return events

    def _normalize_event(self, event: Dict) -> Optional[ExternalCalendarEvent]:
        if not isinstance(event, dict):
            return None

        # Skip cancelled events entirely
        if event.get('isCancelled', False):
            logger.debug(f"Skipping cancelled Outlook event {event.get('id')}")
            return None

        event_id = event.get('id')
        if not event_id:
            logger.warning(f"Skipping Outlook event without id: {event.get('subject')}")
            return None

        start_time = parse_graph_datetime(event.get('start') or {})
        if start_time is None:
            logger.warning(f"Skipping Outlook event {event_id} without a usable start time")
            return None

        # Nested fields degrade to empty strings
        location = event.get('location') or {}
        location_name = location.get('displayName') if isinstance(location, dict) else None

        return ExternalCalendarEvent(
            id=event_id,
            title=event.get('subject') or "",
            start_time=start_time,
            end_time=parse_graph_datetime(event.get('end') or {}),
            location=location_name or "",
            description=event.get('bodyPreview') or "",
        )
