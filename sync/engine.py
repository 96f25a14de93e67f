# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Sync Engine - fetch a user's external calendar and reconcile it into alarms
"""
import logging
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

import config
from cal_ops.errors import (
    ExternalCalendarPermanentError,
    SyncCancelledError,
    UserNotFoundError,
)
from cal_ops.executor import CalendarFetchExecutor
from cal_ops.providers import ProviderRegistry, build_default_registry
from models import CalendarFetchError, SyncOutcome, SyncRequest
from stores import AlarmStore, UserStore
from sync.cadence import retry_suggestion, suggest_next_sync
from sync.history import SyncHistory
from sync.reconciler import AlarmReconciler
from sync.validator import SyncRequestValidator
from utils.logger import StructuredLogger
from utils.metrics import MetricsCollector
from utils.timezone import ensure_utc, start_of_day_utc, utc_now

logger = logging.getLogger(__name__)


class CalendarSyncEngine:
    """Core engine for external calendar to alarm synchronization"""

    def __init__(
        self,
        alarm_store: AlarmStore,
        user_store: UserStore,
        registry: Optional[ProviderRegistry] = None,
        executor: Optional[CalendarFetchExecutor] = None,
        history: Optional[SyncHistory] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.alarm_store = alarm_store
        self.user_store = user_store
        self.registry = registry or build_default_registry()
        self.executor = executor or CalendarFetchExecutor()
        self.history = history or SyncHistory()
        self.metrics = metrics or MetricsCollector()
        self.clock = clock

        self.validator = SyncRequestValidator(self.registry.names(), clock=clock)
        self.reconciler = AlarmReconciler(alarm_store)
        self.structured_logger = StructuredLogger(__name__)

    def resolve_window(self, request: SyncRequest) -> Tuple[datetime, datetime]:
        """Default window is today (UTC midnight) through thirty days later"""
        from_date = ensure_utc(request.sync_from_date) or start_of_day_utc(self.clock())
        to_date = ensure_utc(request.sync_to_date) or from_date + timedelta(days=config.DEFAULT_SYNC_WINDOW_DAYS)
        return from_date, to_date

    def sync(self, request: SyncRequest, cancel_token: Optional[threading.Event] = None) -> SyncOutcome:
        """
        Run one sync for one user and provider

        Returns:
            SyncOutcome with counts and audit trail. A temporary provider failure
            also returns an outcome, with zero counts and a warning.

        Raises:
            SyncValidationError: the request is malformed or the user is unknown
            ExternalCalendarPermanentError: the provider rejected the fetch for good
            SyncCancelledError: the cancel token fired
        """
        self.validator.validate(request)

        user_id = request.user_id if isinstance(request.user_id, uuid.UUID) else uuid.UUID(str(request.user_id))
        user = self.user_store.find_by_id(user_id)
        if user is None or not user.is_active:
            logger.warning(f"Sync requested for unknown or inactive user {user_id}")
            raise UserNotFoundError(user_id)

        provider = self.registry.get(request.provider)
        from_date, to_date = self.resolve_window(request)
        start_time = time.monotonic()

        logger.info(f"Starting {provider.name} sync for user {user_id} "
                    f"({from_date.isoformat()} to {to_date.isoformat()})")
        self.structured_logger.log_sync_event('sync_started', {
            'user_id': str(user_id),
            'provider': provider.name,
            'sync_from': from_date.isoformat(),
            'sync_to': to_date.isoformat(),
            'force_full_sync': request.force_full_sync
        })

        fetch_result = self.executor.execute(provider, request.access_token, from_date, to_date, cancel_token)

        if not fetch_result.is_success:
            return self._handle_fetch_failure(user_id, provider.name, fetch_result.error,
                                              time.monotonic() - start_time)

        if cancel_token is not None and cancel_token.is_set():
            raise SyncCancelledError(f"Sync for user {user_id} cancelled before reconciliation")

        events = fetch_result.events
        logger.info(f"Fetched {len(events)} events from {provider.name} "
                    f"after {fetch_result.retry_attempts} retries")

        result = self.reconciler.reconcile(user_id, events, request.force_full_sync)

        now = self.clock()
        outcome = SyncOutcome(
            events_processed=result.processed,
            alarms_created=result.created,
            alarms_updated=result.updated,
            alarms_skipped=result.skipped,
            synced_at=now,
            warnings=result.warnings,
            processed_events=result.processed_events
        )
        outcome.next_sync_suggested = suggest_next_sync(
            provider.name, outcome.events_processed, outcome.alarms_changed, now
        )

        duration = time.monotonic() - start_time
        self.metrics.record_sync_duration(provider.name, duration)
        self.metrics.record_sync_result(provider.name, outcome.events_processed, outcome.alarms_created,
                                        outcome.alarms_updated, outcome.alarms_skipped)
        self.history.add_entry(user_id, provider.name, duration, outcome=outcome)

        self.structured_logger.log_sync_event('sync_completed', {
            'user_id': str(user_id),
            'provider': provider.name,
            'duration_seconds': duration,
            'events_processed': outcome.events_processed,
            'alarms_created': outcome.alarms_created,
            'alarms_updated': outcome.alarms_updated,
            'alarms_skipped': outcome.alarms_skipped,
            'warnings': len(outcome.warnings),
            'next_sync_suggested': outcome.next_sync_suggested.isoformat()
        })
        self.structured_logger.log_performance('calendar_sync', duration, outcome.events_processed)

        return outcome

    def _handle_fetch_failure(self, user_id: uuid.UUID, provider_name: str,
                              error: CalendarFetchError, duration: float) -> SyncOutcome:
        self.metrics.record_sync_duration(provider_name, duration)
        self.metrics.record_fetch_error(provider_name, error.error_code, error.is_retryable, error.message)

        if error.is_retryable:
            now = self.clock()
            outcome = SyncOutcome(
                synced_at=now,
                next_sync_suggested=retry_suggestion(now),
                warnings=[f"Temporary {provider_name} failure ({error.error_code}): {error.message}. "
                          f"Sync will be retried later."]
            )
            self.history.add_entry(user_id, provider_name, duration, outcome=outcome,
                                   error=error.message, retryable=True)
            self.structured_logger.log_sync_event('sync_warning', {
                'user_id': str(user_id),
                'provider': provider_name,
                'error_code': error.error_code,
                'message': error.message,
                'next_sync_suggested': outcome.next_sync_suggested.isoformat()
            })
            return outcome

        self.history.add_entry(user_id, provider_name, duration, error=error.message)
        self.structured_logger.log_sync_event('sync_failed', {
            'user_id': str(user_id),
            'provider': provider_name,
            'error_code': error.error_code,
            'message': error.message
        })
        raise ExternalCalendarPermanentError(
            provider_name,
            error.message,
            calendar_id=error.calendar_id,
            error_code=error.error_code,
            fetch_error=error
        ) from error.original_exception

    def get_status(self) -> Dict:
        """Breaker states and recent history for diagnostics"""
        breakers = {}
        for name in self.registry.names():
            breaker = self.executor.breaker_for(name)
            if breaker is not None:
                breakers[name] = breaker.get_statistics()
        return {
            'providers': self.registry.names(),
            'circuit_breakers': breakers,
            'history': self.history.get_statistics(),
            'metrics': self.metrics.get_metrics_summary(),
            'current_time': self.clock().isoformat()
        }
