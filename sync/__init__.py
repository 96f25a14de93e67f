from sync.engine import CalendarSyncEngine
from sync.scheduler import SyncScheduler, SyncRegistration
from sync.history import SyncHistory
from sync.validator import SyncRequestValidator
from sync.reconciler import AlarmReconciler, alarm_name_for
from sync.cadence import suggest_next_sync, retry_suggestion

__all__ = [
    'CalendarSyncEngine',
    'SyncScheduler',
    'SyncRegistration',
    'SyncHistory',
    'SyncRequestValidator',
    'AlarmReconciler',
    'alarm_name_for',
    'suggest_next_sync',
    'retry_suggestion',
]
