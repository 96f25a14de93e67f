# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Data models for external calendar sync and alarm reconciliation
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from utils.timezone import utc_now

# =============================================================================
# PROVIDERS
# =============================================================================

class CalendarProviderName(str, Enum):
    """Known external calendar providers"""
    GOOGLE = "google"
    OUTLOOK = "outlook"
    APPLE = "apple"
    CALDAV = "caldav"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class ErrorCode(str, Enum):
    """Provider-independent failure taxonomy"""
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    HTTP_ERROR = "HTTP_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    UNKNOWN = "UNKNOWN"


class FetchOutcome(str, Enum):
    """Tagged outcome of a fetch attempt"""
    SUCCESS = "success"
    TEMPORARY_FAILURE = "temporary_failure"
    PERMANENT_FAILURE = "permanent_failure"


class ProcessingStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


# =============================================================================
# FETCH STAGE
# =============================================================================

@dataclass(frozen=True)
class ExternalCalendarEvent:
    """A provider-agnostic calendar event"""
    id: str
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    location: str = ""
    description: str = ""


@dataclass(frozen=True)
class CalendarFetchError:
    """A classified fetch failure; is_retryable is fixed at construction"""
    provider: str
    error_code: str
    message: str
    is_retryable: bool
    occurred_at: datetime = field(default_factory=utc_now)
    original_exception: Optional[BaseException] = None
    calendar_id: Optional[str] = None

    @property
    def outcome(self) -> FetchOutcome:
        if self.is_retryable:
            return FetchOutcome.TEMPORARY_FAILURE
        return FetchOutcome.PERMANENT_FAILURE


@dataclass(frozen=True)
class CalendarFetchResult:
    """Either a list of events or a fetch error, never both"""
    events: List[ExternalCalendarEvent]
    error: Optional[CalendarFetchError]
    retry_attempts: int = 0

    @classmethod
    def success(cls, events: List[ExternalCalendarEvent], retry_attempts: int = 0) -> 'CalendarFetchResult':
        return cls(events=list(events or []), error=None, retry_attempts=retry_attempts)

    @classmethod
    def failure(cls, error: CalendarFetchError, retry_attempts: int = 0) -> 'CalendarFetchResult':
        if error is None:
            raise ValueError("A failed fetch result needs an error")
        return cls(events=[], error=error, retry_attempts=retry_attempts)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def outcome(self) -> FetchOutcome:
        if self.error is None:
            return FetchOutcome.SUCCESS
        return self.error.outcome


# =============================================================================
# SYNC REQUEST / OUTCOME
# =============================================================================

@dataclass
class SyncRequest:
    """Input to a single sync run"""
    user_id: Optional[uuid.UUID]
    provider: str
    access_token: str
    sync_from_date: Optional[datetime] = None
    sync_to_date: Optional[datetime] = None
    force_full_sync: bool = False


@dataclass
class ProcessedEvent:
    """Audit trail entry for one reconciled event"""
    external_id: str
    title: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    location: str
    alarm_created: bool
    processing_status: ProcessingStatus

    def to_dict(self) -> dict:
        return {
            'external_id': self.external_id,
            'title': self.title,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'location': self.location,
            'alarm_created': self.alarm_created,
            'processing_status': self.processing_status.value,
        }


@dataclass
class SyncOutcome:
    """Aggregate result of a sync run"""
    events_processed: int = 0
    alarms_created: int = 0
    alarms_updated: int = 0
    alarms_skipped: int = 0
    synced_at: datetime = field(default_factory=utc_now)
    next_sync_suggested: Optional[datetime] = None
    warnings: List[str] = field(default_factory=list)
    processed_events: List[ProcessedEvent] = field(default_factory=list)

    @property
    def alarms_changed(self) -> int:
        return self.alarms_created + self.alarms_updated

    def to_dict(self) -> dict:
        return {
            'events_processed': self.events_processed,
            'alarms_created': self.alarms_created,
            'alarms_updated': self.alarms_updated,
            'alarms_skipped': self.alarms_skipped,
            'synced_at': self.synced_at.isoformat(),
            'next_sync_suggested': self.next_sync_suggested.isoformat() if self.next_sync_suggested else None,
            'warnings': list(self.warnings),
            'processed_events': [event.to_dict() for event in self.processed_events],
        }


# =============================================================================
# COLLABORATOR ENTITIES
# =============================================================================

@dataclass
class Alarm:
    """Alarm entity owned by the alarm store"""
    user_id: uuid.UUID
    name: str
    time: datetime
    enabled: bool = True
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


@dataclass
class User:
    id: uuid.UUID
    name: str
    email: str = ""
    is_active: bool = True
