# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Calendar provider abstraction and registry
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from cal_ops.errors import SyncCancelledError
from models import ExternalCalendarEvent

logger = logging.getLogger(__name__)

# =============================================================================
# CALENDAR PROVIDER ABSTRACTION
# =============================================================================

class CalendarProvider:
    """Abstract base class for calendar providers.

    Subclasses implement `_fetch_events` (one HTTP round trip returning raw
    provider items) and `_normalize_event` (raw item -> ExternalCalendarEvent,
    or None when the item is unusable). Providers never touch alarm state.
    """

    name: str = ""

    def fetch(
        self,
        access_token: str,
        from_date: datetime,
        to_date: datetime,
        cancel_token: Optional[threading.Event] = None
    ) -> List[ExternalCalendarEvent]:
        """Template method - same structure for all providers"""
        if cancel_token is not None and cancel_token.is_set():
            raise SyncCancelledError(f"Fetch from {self.name} cancelled before start")

        raw_events = self._fetch_events(access_token, from_date, to_date)

        events = []
        dropped = 0
        for raw in raw_events:
            event = self._normalize_event(raw)
            if event is None:
                dropped += 1
                continue
            events.append(event)

        if dropped:
            logger.warning(f"{self.name}: dropped {dropped} item(s) that could not be normalized")
        logger.info(f"{self.name}: fetched {len(events)} events")
        return events

    def _fetch_events(self, access_token: str, from_date: datetime, to_date: datetime) -> List[Dict]:
        """Fetch raw events - to be implemented by subclasses"""
        raise NotImplementedError

    def _normalize_event(self, event: Dict) -> Optional[ExternalCalendarEvent]:
        """Normalize a raw event - to be implemented by subclasses"""
        raise NotImplementedError


class ProviderRegistry:
    """Maps provider identifiers to provider implementations"""

    def __init__(self):
        self._providers: Dict[str, CalendarProvider] = {}

    def register(self, provider: CalendarProvider):
        key = provider.name.lower()
        if not key:
            raise ValueError("Provider must have a name")
        self._providers[key] = provider
        logger.debug(f"Registered calendar provider '{key}'")

    def get(self, name: str) -> CalendarProvider:
        """Look up a provider; unknown names raise KeyError"""
        return self._providers[name.strip().lower()]

    def names(self) -> List[str]:
        return sorted(self._providers)

    def __contains__(self, name) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._providers

    def __iter__(self) -> Iterator[CalendarProvider]:
        return iter(self._providers.values())


def build_default_registry(client_factory=None) -> ProviderRegistry:
    """Registry holding the Google, Outlook, Apple and CalDAV providers"""
    from cal_ops.google import GoogleCalendarProvider
    from cal_ops.outlook import OutlookCalendarProvider
    from cal_ops.unavailable import AppleCalendarProvider, CalDAVCalendarProvider

    registry = ProviderRegistry()
    registry.register(GoogleCalendarProvider(client_factory))
    registry.register(OutlookCalendarProvider(client_factory))
    registry.register(AppleCalendarProvider())
    registry.register(CalDAVCalendarProvider())
    return registry
