# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Next-sync suggestions based on provider and recent activity
"""
from datetime import datetime, timedelta
from typing import Optional

import config
from utils.timezone import utc_now

DEFAULT_INTERVAL_HOURS = 6


def suggest_next_sync(provider: str, events_processed: int, alarms_changed: int,
                      now: Optional[datetime] = None) -> datetime:
    """
    Busy calendars are polled twice as often; empty ones half as often.
    """
    now = now or utc_now()
    hours = config.PROVIDER_SYNC_INTERVAL_HOURS.get(
        (provider or '').strip().lower(), DEFAULT_INTERVAL_HOURS
    )

    if (events_processed > config.HIGH_ACTIVITY_EVENT_THRESHOLD
            or alarms_changed > config.HIGH_ACTIVITY_CHANGE_THRESHOLD):
        hours /= 2
    elif events_processed == 0:
        hours *= 2

    return now + timedelta(hours=hours)


def retry_suggestion(now: Optional[datetime] = None) -> datetime:
    """When to try again after a temporary provider failure"""
    return (now or utc_now()) + timedelta(minutes=config.RETRY_SUGGESTION_MINUTES)
