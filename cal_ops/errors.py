# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Exception hierarchy for calendar sync
"""
from typing import List, Optional


class CalendarSyncError(Exception):
    """Base class for every error raised by the sync engine"""
    pass


class SyncValidationError(CalendarSyncError):
    """Raised when a sync request is rejected before any I/O"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) if self.errors else "Invalid sync request")


class UserNotFoundError(SyncValidationError):
    """Raised when the requesting user is unknown or inactive"""

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__([f"User {user_id} was not found or is inactive"])


class SyncCancelledError(CalendarSyncError):
    """Raised when the caller cancels an in-flight sync"""
    pass


class ExternalCalendarIntegrationError(CalendarSyncError):
    """Failure talking to an external calendar provider"""

    def __init__(
        self,
        provider: str,
        message: str,
        is_retryable: bool,
        calendar_id: Optional[str] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.is_retryable = is_retryable
        self.calendar_id = calendar_id
        self.error_code = error_code

    def __str__(self):
        return f"[{self.provider}] {self.message}"


class ExternalCalendarTemporaryError(ExternalCalendarIntegrationError):
    """A failure that may succeed when retried (network faults, throttling, 5xx)"""

    def __init__(self, provider: str, message: str, calendar_id: Optional[str] = None,
                 error_code: Optional[str] = None):
        super().__init__(provider, message, True, calendar_id, error_code)


class ExternalCalendarPermanentError(ExternalCalendarIntegrationError):
    """A failure that retrying cannot fix (bad credentials, contract changes)"""

    def __init__(self, provider: str, message: str, calendar_id: Optional[str] = None,
                 error_code: Optional[str] = None, fetch_error=None):
        super().__init__(provider, message, False, calendar_id, error_code)
        self.fetch_error = fetch_error


class MalformedEventError(CalendarSyncError):
    """A single event could not be reconciled"""

    def __init__(self, event_id: str, reason: str):
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"Event '{event_id}': {reason}")
