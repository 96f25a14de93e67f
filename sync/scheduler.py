# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Background Scheduler for periodic external calendar syncs
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict, List, Optional, Tuple

import schedule

import config
from cal_ops.errors import CalendarSyncError, SyncCancelledError
from models import SyncRequest
from utils.timezone import format_utc_time, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SyncRegistration:
    """A user's connected calendar, synced in the background"""
    user_id: uuid.UUID
    provider: str
    access_token: str
    next_sync_due: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    consecutive_failures: int = 0

    @property
    def key(self) -> Tuple[str, str]:
        return str(self.user_id), self.provider


class SyncScheduler:
    """Manages background sync scheduling"""

    def __init__(self, sync_engine, interval_minutes: int = config.CALENDAR_SYNC_INTERVAL_MIN,
                 enabled: bool = config.CALENDAR_SYNC_ENABLED, startup_delay: float = 0,
                 poll_seconds: float = 60):
        self.sync_engine = sync_engine
        self.interval_minutes = interval_minutes
        self.enabled = enabled
        self.startup_delay = startup_delay
        self.poll_seconds = poll_seconds

        self.registrations: Dict[Tuple[str, str], SyncRegistration] = {}
        self.registrations_lock = Lock()
        self._sync_locks: Dict[Tuple[str, str], Lock] = {}

        self.scheduler_lock = Lock()
        self.scheduler_thread = None
        self._stop_event = threading.Event()

    def register(self, user_id: uuid.UUID, provider: str, access_token: str) -> SyncRegistration:
        """Add or refresh a registration; a refreshed token keeps the existing due time"""
        registration = SyncRegistration(user_id=user_id, provider=provider.strip().lower(),
                                        access_token=access_token)
        with self.registrations_lock:
            existing = self.registrations.get(registration.key)
            if existing is not None:
                existing.access_token = access_token
                return existing
            self.registrations[registration.key] = registration
            self._sync_locks[registration.key] = Lock()
        logger.info(f"Registered {registration.provider} calendar sync for user {user_id}")
        return registration

    def unregister(self, user_id: uuid.UUID, provider: str) -> bool:
        key = (str(user_id), provider.strip().lower())
        with self.registrations_lock:
            removed = self.registrations.pop(key, None)
            self._sync_locks.pop(key, None)
        if removed:
            logger.info(f"Unregistered {removed.provider} calendar sync for user {user_id}")
        return removed is not None

    def get_registrations(self) -> List[SyncRegistration]:
        with self.registrations_lock:
            return list(self.registrations.values())

    def run_pending_syncs(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        One synchronous pass over every registration that is due

        Returns:
            Counts of synced, skipped and failed registrations
        """
        now = now or utc_now()
        counts = {'synced': 0, 'skipped': 0, 'failed': 0}

        for registration in self.get_registrations():
            if registration.next_sync_due is not None and registration.next_sync_due > now:
                counts['skipped'] += 1
                continue

            with self.registrations_lock:
                sync_lock = self._sync_locks.get(registration.key)
            if sync_lock is None or not sync_lock.acquire(blocking=False):
                logger.info(f"Sync already running for {registration.key}, skipping")
                counts['skipped'] += 1
                continue

            try:
                counts[self._sync_registration(registration, now)] += 1
            finally:
                sync_lock.release()

        logger.info(f"Scheduled sync pass at {format_utc_time(now)}: {counts}")
        return counts

    def _sync_registration(self, registration: SyncRegistration, now: datetime) -> str:
        """Run one sync and return the counter it belongs to"""
        request = SyncRequest(
            user_id=registration.user_id,
            provider=registration.provider,
            access_token=registration.access_token
        )
        try:
            outcome = self.sync_engine.sync(request, cancel_token=self._stop_event)
        except SyncCancelledError:
            # Shutdown leaves the registration due for the next run
            logger.info(f"Scheduled {registration.provider} sync for user {registration.user_id} "
                        f"cancelled by shutdown")
            return 'skipped'
        except CalendarSyncError as e:
            registration.consecutive_failures += 1
            registration.next_sync_due = now + timedelta(minutes=self.interval_minutes)
            logger.error(f"❌ Scheduled {registration.provider} sync failed for user "
                         f"{registration.user_id}: {e}")
            return 'failed'
        except Exception as e:
            # One broken integration must not stop the pass for everyone else
            registration.consecutive_failures += 1
            registration.next_sync_due = now + timedelta(minutes=self.interval_minutes)
            logger.exception(f"❌ Unexpected error syncing {registration.provider} for user "
                             f"{registration.user_id}: {e}")
            return 'failed'

        registration.last_synced_at = outcome.synced_at
        registration.next_sync_due = outcome.next_sync_suggested or now + timedelta(minutes=self.interval_minutes)
        if outcome.warnings and outcome.events_processed == 0 and outcome.alarms_changed == 0:
            logger.warning(f"⚠️ Scheduled {registration.provider} sync for user {registration.user_id} "
                           f"made no progress: {outcome.warnings[0]}")
        else:
            registration.consecutive_failures = 0
            logger.info(f"✅ Scheduled {registration.provider} sync for user {registration.user_id}: "
                        f"{outcome.alarms_created} created, {outcome.alarms_updated} updated; "
                        f"next sync {format_utc_time(registration.next_sync_due)}")
        return 'synced'

    def start(self) -> bool:
        """Start the scheduler thread; does nothing when background sync is disabled"""
        if not self.enabled:
            logger.info("Background calendar sync is disabled")
            return 'failed'

        with self.scheduler_lock:
            if self.scheduler_thread is None or not self.scheduler_thread.is_alive():
                logger.info(f"Starting scheduler thread at {format_utc_time(utc_now())}...")
                self._stop_event.clear()
                self.scheduler_thread = threading.Thread(target=self._run_scheduler, daemon=True)
                self.scheduler_thread.start()
            else:
                logger.info("Scheduler already running")
        return True

    def stop(self, timeout: Optional[float] = None):
        """Stop the scheduler; an in-flight sync is cancelled at its next checkpoint"""
        self._stop_event.set()
        with self.scheduler_lock:
            thread = self.scheduler_thread
        if thread is not None and timeout is not None:
            thread.join(timeout)
        logger.info(f"Stopping scheduler at {format_utc_time(utc_now())}...")

    def is_running(self) -> bool:
        with self.scheduler_lock:
            return bool(self.scheduler_thread and self.scheduler_thread.is_alive()
                        and not self._stop_event.is_set())

    def _run_scheduler(self):
        """Run the scheduler loop"""
        jobs = schedule.Scheduler()
        jobs.every(self.interval_minutes).minutes.do(self.run_pending_syncs)

        logger.info(f"Scheduler started - calendar sync every {self.interval_minutes} minutes")

        if self.startup_delay and self._stop_event.wait(self.startup_delay):
            return

        # First pass runs right away instead of one interval later
        jobs.run_all()
        while not self._stop_event.wait(self.poll_seconds):
            jobs.run_pending()

        logger.info(f"Scheduler stopped at {format_utc_time(utc_now())}")
