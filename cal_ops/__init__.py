from cal_ops.errors import (
    CalendarSyncError,
    SyncValidationError,
    UserNotFoundError,
    SyncCancelledError,
    ExternalCalendarIntegrationError,
    ExternalCalendarTemporaryError,
    ExternalCalendarPermanentError,
    MalformedEventError,
)
from cal_ops.providers import CalendarProvider, ProviderRegistry, build_default_registry
from cal_ops.http import HttpClientFactory

__all__ = [
    'CalendarSyncError',
    'SyncValidationError',
    'UserNotFoundError',
    'SyncCancelledError',
    'ExternalCalendarIntegrationError',
    'ExternalCalendarTemporaryError',
    'ExternalCalendarPermanentError',
    'MalformedEventError',
    'CalendarProvider',
    'ProviderRegistry',
    'build_default_registry',
    'HttpClientFactory',
]
