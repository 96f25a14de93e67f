"""
Sync engine tests - end-to-end runs against in-memory stores

A run must never write alarms unless the fetch succeeded, and running the same
sync twice must not create duplicate alarms.
"""
import threading
import uuid
from datetime import timedelta

import pytest

from cal_ops.errors import (
    ExternalCalendarPermanentError,
    ExternalCalendarTemporaryError,
    SyncCancelledError,
    SyncValidationError,
    UserNotFoundError,
)
from models import ErrorCode, ProcessingStatus, SyncRequest, User
from tests.conftest import FIXED_NOW, make_event


def request_for(user, provider='google', **kwargs):
    return SyncRequest(user_id=user.id, provider=provider, access_token='token-123', **kwargs)


class TestSuccessfulSync:
    """Fetch succeeds and events are reconciled into alarms"""

    @pytest.mark.integration
    def test_dentist_event_creates_alarm_fifteen_minutes_before(self, engine, google, alarm_store, user):
        start = FIXED_NOW.replace(hour=9, minute=0) + timedelta(days=2)
        google.events = [make_event('evt-dentist', 'Dentist', start, end_time=start + timedelta(hours=1),
                                    location='Main St Clinic')]

        outcome = engine.sync(request_for(user))

        assert outcome.events_processed == 1
        assert outcome.alarms_created == 1
        assert outcome.alarms_updated == 0
        assert outcome.alarms_skipped == 0
        assert outcome.warnings == []

        alarms = alarm_store.find_by_user(user.id)
        assert len(alarms) == 1, "Exactly one alarm should be stored"
        assert alarms[0].time == start.replace(hour=8, minute=45)
        assert alarms[0].enabled
        assert 'Dentist' in alarms[0].name
        assert 'evt-dentist' in alarms[0].name

        processed = outcome.processed_events[0]
        assert processed.external_id == 'evt-dentist'
        assert processed.alarm_created is True
        assert processed.processing_status == ProcessingStatus.CREATED
        assert processed.location == 'Main St Clinic'

        # One event, one change: Google's base interval applies
        assert outcome.next_sync_suggested == FIXED_NOW + timedelta(hours=4)
        assert outcome.synced_at == FIXED_NOW

    @pytest.mark.integration
    def test_second_sync_is_idempotent(self, engine, google, alarm_store, user):
        start = FIXED_NOW + timedelta(days=1)
        google.events = [make_event('evt-1', 'Standup', start)]

        engine.sync(request_for(user))
        second = engine.sync(request_for(user))

        assert second.alarms_created == 0
        assert second.alarms_skipped == 1
        assert any('alarm already exists' in w for w in second.warnings)
        assert len(alarm_store.find_by_user(user.id)) == 1, "Re-sync must not duplicate alarms"

    @pytest.mark.integration
    def test_force_full_sync_updates_existing_alarm(self, engine, google, alarm_store, user):
        start = FIXED_NOW + timedelta(days=1)
        google.events = [make_event('evt-1', 'Standup', start)]
        engine.sync(request_for(user))

        moved = start + timedelta(hours=3)
        google.events = [make_event('evt-1', 'Standup (moved)', moved)]
        outcome = engine.sync(request_for(user, force_full_sync=True))

        assert outcome.alarms_updated == 1
        assert outcome.alarms_created == 0
        assert outcome.processed_events[0].alarm_created is False
        assert outcome.processed_events[0].processing_status == ProcessingStatus.UPDATED

        alarms = alarm_store.find_by_user(user.id)
        assert len(alarms) == 1
        assert alarms[0].time == moved - timedelta(minutes=15)
        assert alarms[0].name.startswith('Standup (moved)')
        assert alarms[0].updated_at is not None

    @pytest.mark.integration
    def test_bad_event_does_not_abort_batch(self, engine, google, alarm_store, user):
        google.events = [
            make_event(f'evt-{i}', '' if i == 3 else f'Event {i}', FIXED_NOW + timedelta(days=i))
            for i in range(1, 6)
        ]

        outcome = engine.sync(request_for(user))

        assert outcome.events_processed == 5
        assert outcome.alarms_created == 4
        assert outcome.alarms_skipped == 1
        assert len(outcome.warnings) == 1
        assert 'evt-3' in outcome.warnings[0]
        assert outcome.processed_events[2].processing_status == ProcessingStatus.SKIPPED
        assert len(alarm_store.find_by_user(user.id)) == 4

    @pytest.mark.integration
    def test_default_window_is_today_plus_thirty_days(self, engine, google, user):
        engine.sync(request_for(user))

        from_date, to_date = google.windows[0]
        assert from_date == FIXED_NOW.replace(hour=0, minute=0)
        assert to_date == from_date + timedelta(days=30)

    @pytest.mark.integration
    def test_explicit_window_is_passed_through(self, engine, google, user):
        from_date = FIXED_NOW + timedelta(days=3)
        to_date = FIXED_NOW + timedelta(days=5)

        engine.sync(request_for(user, sync_from_date=from_date, sync_to_date=to_date))

        assert google.windows[0] == (from_date, to_date)

    @pytest.mark.integration
    def test_provider_name_is_case_insensitive(self, engine, google, user):
        engine.sync(request_for(user, provider='  Google '))
        assert google.calls == 1


class TestNextSyncSuggestion:
    """Busy calendars are polled sooner, empty calendars later"""

    @pytest.mark.integration
    def test_no_events_doubles_interval(self, engine, user):
        outcome = engine.sync(request_for(user))
        assert outcome.next_sync_suggested == FIXED_NOW + timedelta(hours=8)

    @pytest.mark.integration
    def test_many_events_halves_interval(self, engine, google, user):
        google.events = [
            make_event(f'evt-{i}', f'Event {i}', FIXED_NOW + timedelta(days=1, hours=i * 2))
            for i in range(12)
        ]
        outcome = engine.sync(request_for(user))
        assert outcome.events_processed == 12
        assert outcome.next_sync_suggested == FIXED_NOW + timedelta(hours=2)


class TestValidation:
    """Malformed requests fail before any provider call"""

    @pytest.mark.unit
    def test_unknown_provider_rejected(self, engine, google, user):
        with pytest.raises(SyncValidationError) as exc_info:
            engine.sync(request_for(user, provider='yahoo'))

        assert any('yahoo' in e for e in exc_info.value.errors)
        assert google.calls == 0

    @pytest.mark.unit
    def test_unknown_user_rejected(self, engine, google):
        stranger = User(id=uuid.uuid4(), name="Nobody")
        with pytest.raises(UserNotFoundError):
            engine.sync(request_for(stranger))
        assert google.calls == 0

    @pytest.mark.unit
    def test_inactive_user_rejected(self, engine, user_store, google):
        inactive = User(id=uuid.uuid4(), name="Gone", is_active=False)
        user_store.add(inactive)
        with pytest.raises(UserNotFoundError) as exc_info:
            engine.sync(request_for(inactive))
        assert isinstance(exc_info.value, SyncValidationError)
        assert google.calls == 0


class TestFetchFailures:
    """Temporary failures return a zero-progress outcome; permanent ones raise"""

    @pytest.mark.integration
    @pytest.mark.retry
    def test_temporary_failure_returns_retry_outcome(self, engine, google, alarm_store, user):
        google.errors = [
            ExternalCalendarTemporaryError('google', 'HTTP 503', error_code=ErrorCode.SERVER_ERROR.value)
            for _ in range(4)
        ]

        outcome = engine.sync(request_for(user))

        assert google.calls == 4, "Initial call plus three retries"
        assert outcome.events_processed == 0
        assert outcome.alarms_changed == 0
        assert len(outcome.warnings) == 1
        assert outcome.next_sync_suggested == FIXED_NOW + timedelta(minutes=30)
        assert alarm_store.find_by_user(user.id) == []

    @pytest.mark.integration
    @pytest.mark.retry
    def test_temporary_failure_then_success(self, engine, google, user):
        google.errors = [ExternalCalendarTemporaryError('google', 'HTTP 429',
                                                        error_code=ErrorCode.RATE_LIMITED.value)]
        google.events = [make_event('evt-1', 'Lunch', FIXED_NOW + timedelta(days=1))]

        outcome = engine.sync(request_for(user))

        assert google.calls == 2
        assert outcome.alarms_created == 1

    @pytest.mark.integration
    def test_permanent_failure_raises_with_fetch_error(self, engine, google, alarm_store, user):
        google.errors = [ExternalCalendarPermanentError('google', 'token rejected',
                                                        error_code=ErrorCode.UNAUTHORIZED.value)]

        with pytest.raises(ExternalCalendarPermanentError) as exc_info:
            engine.sync(request_for(user))

        error = exc_info.value
        assert google.calls == 1, "Permanent failures are not retried"
        assert error.is_retryable is False
        assert error.provider == 'google'
        assert error.fetch_error is not None
        assert error.fetch_error.error_code == ErrorCode.UNAUTHORIZED.value
        assert alarm_store.find_by_user(user.id) == []

    @pytest.mark.integration
    def test_apple_is_not_available(self, engine, user):
        with pytest.raises(ExternalCalendarPermanentError) as exc_info:
            engine.sync(request_for(user, provider='apple'))

        assert exc_info.value.error_code == ErrorCode.NOT_AVAILABLE.value
        assert 'not yet available' in str(exc_info.value)

    @pytest.mark.integration
    def test_cancelled_sync_writes_nothing(self, engine, google, alarm_store, user):
        google.events = [make_event('evt-1', 'Lunch', FIXED_NOW + timedelta(days=1))]
        cancel_token = threading.Event()
        cancel_token.set()

        with pytest.raises(SyncCancelledError):
            engine.sync(request_for(user), cancel_token=cancel_token)

        assert google.calls == 0
        assert alarm_store.find_by_user(user.id) == []


class TestBookkeeping:
    """History and metrics see every run"""

    @pytest.mark.integration
    def test_history_and_metrics_record_runs(self, engine, google, user):
        google.events = [make_event('evt-1', 'Lunch', FIXED_NOW + timedelta(days=1))]
        engine.sync(request_for(user))

        google.errors = [ExternalCalendarPermanentError('google', 'gone', error_code=ErrorCode.FORBIDDEN.value)]
        with pytest.raises(ExternalCalendarPermanentError):
            engine.sync(request_for(user))

        recent = engine.history.get_recent(user.id, 'google')
        assert len(recent) == 2
        assert recent[0]['success'] is False
        assert recent[1]['success'] is True
        assert recent[1]['operations']['created'] == 1

        summary = engine.metrics.get_metrics_summary()
        assert summary['sync_metrics']['alarms_breakdown']['created'] == 1
        assert summary['error_metrics']['by_type'] == {ErrorCode.FORBIDDEN.value: 1}

    @pytest.mark.unit
    def test_status_reports_breakers_per_provider(self, engine):
        status = engine.get_status()
        assert set(status['circuit_breakers']) == {'apple', 'caldav', 'google', 'outlook'}
        assert status['circuit_breakers']['google']['state'] == 'closed'
