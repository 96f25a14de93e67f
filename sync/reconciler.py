# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Alarm Reconciler - decide create / update / skip for each fetched event
"""
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import List, Optional

import config
from cal_ops.errors import MalformedEventError
from models import Alarm, ExternalCalendarEvent, ProcessedEvent, ProcessingStatus
from stores import AlarmStore
from utils.timezone import ensure_utc

logger = logging.getLogger(__name__)


def alarm_name_for(event: ExternalCalendarEvent) -> str:
    """Alarm names carry the external id so later syncs can find them again"""
    return f"{event.title} [{event.id}]"


@dataclass
class ReconcileResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    warnings: List[str] = field(default_factory=list)
    processed_events: List[ProcessedEvent] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.processed_events)


class AlarmReconciler:
    """Applies a batch of events to one user's alarms"""

    def __init__(
        self,
        alarm_store: AlarmStore,
        lead_minutes: int = config.ALARM_LEAD_MINUTES,
        match_window_minutes: int = config.MATCH_WINDOW_MINUTES
    ):
        self.alarm_store = alarm_store
        self.lead_time = timedelta(minutes=lead_minutes)
        self.match_window = timedelta(minutes=match_window_minutes)

    def matches(self, alarm: Alarm, event: ExternalCalendarEvent) -> bool:
        """
        An alarm matches an event when its name contains the event id, or when
        the name equals the title and the alarm fires within the match window of
        the event start. Two same-titled events less than an hour apart collide
        under the second rule.
        """
        if event.id and event.id in alarm.name:
            return True
        if alarm.name == event.title:
            delta = abs(ensure_utc(alarm.time) - ensure_utc(event.start_time))
            return delta < self.match_window
        return False

    def find_match(self, alarms: List[Alarm], event: ExternalCalendarEvent) -> Optional[Alarm]:
        return next((alarm for alarm in alarms if self.matches(alarm, event)), None)

    def reconcile(
        self,
        user_id: uuid.UUID,
        events: List[ExternalCalendarEvent],
        force_full_sync: bool = False
    ) -> ReconcileResult:
        """
        Reconcile events in order; a failing event is recorded as skipped with a
        warning and the batch carries on
        """
        result = ReconcileResult()
        # Alarms created during this batch are matched by later events too
        alarms = self.alarm_store.find_by_user(user_id)

        for index, event in enumerate(events, start=1):
            try:
                status = self._apply(user_id, event, alarms, force_full_sync, result)
            except Exception as e:
                event_ref = event.id or f"#{index}"
                warning = f"Failed to process event {event_ref}: {e}"
                logger.warning(warning)
                result.warnings.append(warning)
                result.skipped += 1
                status = ProcessingStatus.SKIPPED

            result.processed_events.append(ProcessedEvent(
                external_id=event.id,
                title=event.title,
                start_time=event.start_time,
                end_time=event.end_time,
                location=event.location,
                alarm_created=status == ProcessingStatus.CREATED,
                processing_status=status
            ))

        logger.info(
            f"Reconciled {result.processed} events for user {user_id}: "
            f"{result.created} created, {result.updated} updated, {result.skipped} skipped"
        )
        return result

    def _apply(
        self,
        user_id: uuid.UUID,
        event: ExternalCalendarEvent,
        alarms: List[Alarm],
        force_full_sync: bool,
        result: ReconcileResult
    ) -> ProcessingStatus:
        if not event.title or not event.title.strip():
            raise MalformedEventError(event.id, "missing title")
        if event.start_time is None:
            raise MalformedEventError(event.id, "missing start time")

        alarm_time = ensure_utc(event.start_time) - self.lead_time
        existing = self.find_match(alarms, event)

        if existing is None:
            alarm = self.alarm_store.create(Alarm(
                user_id=user_id,
                name=alarm_name_for(event),
                time=alarm_time,
                enabled=True
            ))
            alarms.append(alarm)
            result.created += 1
            logger.debug(f"Created alarm '{alarm.name}' at {alarm.time.isoformat()}")
            return ProcessingStatus.CREATED

        if not force_full_sync:
            result.warnings.append(f"Event '{event.title}' ({event.id}): alarm already exists")
            result.skipped += 1
            return ProcessingStatus.SKIPPED

        updated = self.alarm_store.update(replace(existing, name=alarm_name_for(event), time=alarm_time))
        alarms[alarms.index(existing)] = updated
        result.updated += 1
        logger.debug(f"Updated alarm '{updated.name}' to {updated.time.isoformat()}")
        return ProcessingStatus.UPDATED
