# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Environment-based configuration for the external calendar sync engine
"""
import os

# Environment Detection
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')
DEBUG = ENVIRONMENT == 'development'

# Provider Endpoints
GOOGLE_EVENTS_URL = os.environ.get(
    'GOOGLE_EVENTS_URL',
    "https://www.googleapis.com/calendar/v3/calendars/primary/events"
)
OUTLOOK_EVENTS_URL = os.environ.get('OUTLOOK_EVENTS_URL', "https://graph.microsoft.com/v1.0/me/events")
PROVIDER_MAX_RESULTS = int(os.environ.get('PROVIDER_MAX_RESULTS', 250))
REQUEST_TIMEOUT = float(os.environ.get('REQUEST_TIMEOUT', 30))
USER_AGENT = os.environ.get('USER_AGENT', 'alarm-calendar-sync/1.0')

# Retry Settings
MAX_RETRIES = int(os.environ.get('MAX_RETRIES', 3))
BASE_DELAY = float(os.environ.get('BASE_DELAY', 1.0))

# Circuit Breaker Settings
CIRCUIT_BREAKER_FAIL_MAX = int(os.environ.get('CIRCUIT_BREAKER_FAIL_MAX', 5))
CIRCUIT_BREAKER_RESET_TIMEOUT = int(os.environ.get('CIRCUIT_BREAKER_RESET_TIMEOUT', 60))

# Reconciliation Settings
ALARM_LEAD_MINUTES = int(os.environ.get('ALARM_LEAD_MINUTES', 15))
MATCH_WINDOW_MINUTES = int(os.environ.get('MATCH_WINDOW_MINUTES', 60))

# Sync Window Settings
DEFAULT_SYNC_WINDOW_DAYS = int(os.environ.get('DEFAULT_SYNC_WINDOW_DAYS', 30))
MAX_SYNC_HORIZON_DAYS = int(os.environ.get('MAX_SYNC_HORIZON_DAYS', 730))  # 2 years
MAX_FROM_DATE_DAYS = int(os.environ.get('MAX_FROM_DATE_DAYS', 365))

# Next Sync Heuristic (in hours unless noted)
PROVIDER_SYNC_INTERVAL_HOURS = {
    'google': float(os.environ.get('GOOGLE_SYNC_INTERVAL_HOURS', 4)),
    'outlook': float(os.environ.get('OUTLOOK_SYNC_INTERVAL_HOURS', 6)),
    'apple': float(os.environ.get('APPLE_SYNC_INTERVAL_HOURS', 8)),
    'caldav': float(os.environ.get('CALDAV_SYNC_INTERVAL_HOURS', 12)),
}
HIGH_ACTIVITY_EVENT_THRESHOLD = int(os.environ.get('HIGH_ACTIVITY_EVENT_THRESHOLD', 10))
HIGH_ACTIVITY_CHANGE_THRESHOLD = int(os.environ.get('HIGH_ACTIVITY_CHANGE_THRESHOLD', 5))
RETRY_SUGGESTION_MINUTES = int(os.environ.get('RETRY_SUGGESTION_MINUTES', 30))

# Background Sync
CALENDAR_SYNC_ENABLED = os.environ.get('CALENDAR_SYNC_ENABLED', 'True').lower() == 'true'
CALENDAR_SYNC_INTERVAL_MIN = int(os.environ.get('CALENDAR_SYNC_INTERVAL_MIN', 30))

# History
SYNC_HISTORY_MAX_ENTRIES = int(os.environ.get('SYNC_HISTORY_MAX_ENTRIES', 100))

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
STRUCTURED_LOGGING = os.environ.get('STRUCTURED_LOGGING', 'True').lower() == 'true'

# Development Settings
if DEBUG:
    LOG_LEVEL = 'DEBUG'
