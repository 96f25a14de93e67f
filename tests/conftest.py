"""
Shared fixtures: in-memory stores, a scripted provider and a ready engine
"""
import os
import sys
import uuid
from datetime import datetime

import pytest
import pytz

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cal_ops.executor import CalendarFetchExecutor
from cal_ops.providers import CalendarProvider, ProviderRegistry
from cal_ops.unavailable import AppleCalendarProvider, CalDAVCalendarProvider
from models import ExternalCalendarEvent, User
from stores import InMemoryAlarmStore, InMemoryUserStore
from sync.engine import CalendarSyncEngine
from utils.retry import RetryPolicy

FIXED_NOW = datetime(2025, 3, 10, 9, 0, tzinfo=pytz.UTC)


class ScriptedProvider(CalendarProvider):
    """Returns canned events; queued exceptions are raised first, one per call"""

    def __init__(self, name, events=None, errors=None):
        self.name = name
        self.events = list(events or [])
        self.errors = list(errors or [])
        self.calls = 0
        self.windows = []

    def _fetch_events(self, access_token, from_date, to_date):
        self.calls += 1
        self.windows.append((from_date, to_date))
        if self.errors:
            raise self.errors.pop(0)
        return list(self.events)

    def _normalize_event(self, event):
        return event


def make_event(event_id, title, start_time, **kwargs):
    return ExternalCalendarEvent(id=event_id, title=title, start_time=start_time, **kwargs)


@pytest.fixture
def user():
    return User(id=uuid.uuid4(), name="Pat Doe", email="pat@example.com")


@pytest.fixture
def user_store(user):
    return InMemoryUserStore([user])


@pytest.fixture
def alarm_store():
    return InMemoryAlarmStore()


@pytest.fixture
def google():
    return ScriptedProvider('google')


@pytest.fixture
def registry(google):
    registry = ProviderRegistry()
    registry.register(google)
    registry.register(ScriptedProvider('outlook'))
    registry.register(AppleCalendarProvider())
    registry.register(CalDAVCalendarProvider())
    return registry


@pytest.fixture
def executor():
    return CalendarFetchExecutor(policy=RetryPolicy(max_retries=3, base_delay=0))


@pytest.fixture
def engine(alarm_store, user_store, registry, executor):
    return CalendarSyncEngine(
        alarm_store,
        user_store,
        registry=registry,
        executor=executor,
        clock=lambda: FIXED_NOW
    )
