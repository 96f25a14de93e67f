# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Sync History - Track and analyze sync runs per user and provider
"""
from collections import defaultdict, deque
from datetime import timedelta
from threading import Lock
from typing import Dict, List, Optional
import statistics

import config
from models import SyncOutcome
from utils.timezone import utc_now


class SyncHistory:
    """Bounded in-memory record of sync runs"""

    def __init__(self, max_entries: int = config.SYNC_HISTORY_MAX_ENTRIES):
        self.max_entries = max_entries
        self.history = deque(maxlen=max_entries)
        self._lock = Lock()

    def add_entry(self, user_id, provider: str, duration: float,
                  outcome: Optional[SyncOutcome] = None, error: Optional[str] = None,
                  retryable: bool = False) -> Dict:
        """Add a sync run to history; a run without an outcome or with an error is a failure"""
        entry = {
            'timestamp': utc_now(),
            'user_id': str(user_id),
            'provider': provider,
            'duration': duration,
            'success': outcome is not None and error is None,
            'retryable': retryable,
            'operations': {
                'processed': outcome.events_processed if outcome else 0,
                'created': outcome.alarms_created if outcome else 0,
                'updated': outcome.alarms_updated if outcome else 0,
                'skipped': outcome.alarms_skipped if outcome else 0,
            },
            'next_sync_suggested': outcome.next_sync_suggested if outcome else None,
            'warnings': len(outcome.warnings) if outcome else 0,
            'error': error,
        }

        with self._lock:
            self.history.append(entry)
        return entry

    def get_recent(self, user_id=None, provider: Optional[str] = None, limit: int = 10) -> List[Dict]:
        """Most recent entries first, optionally filtered by user and provider"""
        with self._lock:
            entries = list(self.history)

        matches = [
            entry for entry in reversed(entries)
            if (user_id is None or entry['user_id'] == str(user_id))
            and (provider is None or entry['provider'] == provider)
        ]
        return matches[:limit]

    def last_entry(self, user_id, provider: str) -> Optional[Dict]:
        recent = self.get_recent(user_id, provider, limit=1)
        return recent[0] if recent else None

    def get_statistics(self, hours: int = 24) -> Dict:
        """Calculate statistics for the given time period"""
        cutoff_time = utc_now() - timedelta(hours=hours)
        with self._lock:
            recent_entries = [entry for entry in self.history if entry['timestamp'] > cutoff_time]

        if not recent_entries:
            return {
                'period_hours': hours,
                'total_syncs': 0,
                'successful_syncs': 0,
                'failed_syncs': 0,
                'success_rate': 0,
                'average_duration': 0,
                'total_operations': {
                    'processed': 0,
                    'created': 0,
                    'updated': 0,
                    'skipped': 0
                },
                'by_provider': {},
                'last_sync': None,
                'last_successful_sync': None
            }

        successful_syncs = [e for e in recent_entries if e['success']]
        failed_syncs = [e for e in recent_entries if not e['success']]

        durations = [e['duration'] for e in successful_syncs if e['duration'] > 0]
        avg_duration = statistics.mean(durations) if durations else 0

        total_operations = defaultdict(int)
        for entry in successful_syncs:
            for op_type, count in entry['operations'].items():
                total_operations[op_type] += count

        by_provider = defaultdict(int)
        for entry in recent_entries:
            by_provider[entry['provider']] += 1

        last_sync = recent_entries[-1]
        last_successful = next((e for e in reversed(recent_entries) if e['success']), None)

        return {
            'period_hours': hours,
            'total_syncs': len(recent_entries),
            'successful_syncs': len(successful_syncs),
            'failed_syncs': len(failed_syncs),
            'success_rate': len(successful_syncs) / len(recent_entries) * 100,
            'average_duration': avg_duration,
            'total_operations': dict(total_operations),
            'by_provider': dict(by_provider),
            'last_sync': last_sync['timestamp'].isoformat(),
            'last_successful_sync': last_successful['timestamp'].isoformat() if last_successful else None
        }

    def get_recent_failures(self, limit: int = 10) -> List[Dict]:
        """Get recent failed syncs"""
        with self._lock:
            entries = list(self.history)
        failures = [
            {
                'timestamp': entry['timestamp'].isoformat(),
                'user_id': entry['user_id'],
                'provider': entry['provider'],
                'error': entry.get('error') or 'Unknown error',
                'retryable': entry['retryable']
            }
            for entry in reversed(entries)
            if not entry['success']
        ]
        return failures[:limit]

    def clear_history(self):
        """Clear all history"""
        with self._lock:
            self.history.clear()
