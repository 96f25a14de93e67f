"""
Metrics Collector - sync timings, alarm counts and fetch failures per provider
"""
from collections import Counter, defaultdict, deque
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict, List
import statistics

from utils.timezone import utc_now

MAX_ERROR_MESSAGE = 200


def percentile(values: List[float], pct: int) -> float:
    """Linear-interpolated percentile; 0 for an empty list"""
    if not values:
        return 0
    ordered = sorted(values)
    position = (pct / 100) * (len(ordered) - 1)
    low = int(position)
    if low + 1 >= len(ordered):
        return ordered[low]
    return ordered[low] + (ordered[low + 1] - ordered[low]) * (position - low)


class MetricsCollector:
    """In-process metrics for sync runs, kept for a bounded period"""

    def __init__(self, max_metrics_age_days: int = 7, max_entries: int = 10000):
        self.max_age = timedelta(days=max_metrics_age_days)
        self.max_entries = max_entries
        self._series = defaultdict(lambda: deque(maxlen=self.max_entries))
        self._lock = Lock()

    def record_sync_duration(self, provider: str, duration_seconds: float):
        self._record('durations', provider=provider, seconds=duration_seconds)

    def record_sync_result(self, provider: str, processed: int, created: int, updated: int, skipped: int):
        self._record('results', provider=provider, processed=processed,
                     created=created, updated=updated, skipped=skipped)

    def record_fetch_error(self, provider: str, error_code: str, retryable: bool, error_message: str):
        self._record('errors', provider=provider, code=error_code, retryable=retryable,
                     message=(error_message or '')[:MAX_ERROR_MESSAGE])

    def get_metrics_summary(self, hours: int = 24) -> Dict:
        """Summary of the last `hours` hours"""
        self._prune()
        since = utc_now() - timedelta(hours=hours)
        return {
            'period_hours': hours,
            'sync_metrics': self._summarize_syncs(since),
            'error_metrics': self._summarize_errors(since),
        }

    def clear_metrics(self):
        with self._lock:
            self._series.clear()

    def _record(self, series: str, **fields):
        fields['timestamp'] = utc_now()
        with self._lock:
            self._series[series].append(fields)

    def _since(self, series: str, since: datetime) -> List[Dict]:
        with self._lock:
            return [m for m in self._series.get(series, ()) if m['timestamp'] > since]

    def _prune(self):
        oldest = utc_now() - self.max_age
        with self._lock:
            for name, entries in self._series.items():
                while entries and entries[0]['timestamp'] <= oldest:
                    entries.popleft()

    def _summarize_syncs(self, since: datetime) -> Dict:
        durations = [m['seconds'] for m in self._since('durations', since)]
        results = self._since('results', since)

        if not durations:
            return {
                'sync_count': 0,
                'average_duration': 0,
                'percentiles': {},
                'events_processed': 0,
                'by_provider': {}
            }

        return {
            'sync_count': len(durations),
            'average_duration': statistics.mean(durations),
            'median_duration': statistics.median(durations),
            'percentiles': {f'p{p}': percentile(durations, p) for p in (50, 90, 95)},
            'events_processed': sum(r['processed'] for r in results),
            'alarms_breakdown': {
                kind: sum(r[kind] for r in results) for kind in ('created', 'updated', 'skipped')
            },
            'by_provider': dict(Counter(r['provider'] for r in results))
        }

    def _summarize_errors(self, since: datetime) -> Dict:
        errors = self._since('errors', since)
        if not errors:
            return {'total_errors': 0, 'by_type': {}}

        newest_first = sorted(errors, key=lambda e: e['timestamp'], reverse=True)
        return {
            'total_errors': len(errors),
            'retryable_errors': sum(1 for e in errors if e['retryable']),
            'by_type': dict(Counter(e['code'] for e in errors)),
            'by_provider': dict(Counter(e['provider'] for e in errors)),
            'recent_errors': [
                {
                    'timestamp': e['timestamp'].isoformat(),
                    'provider': e['provider'],
                    'type': e['code'],
                    'message': e['message']
                }
                for e in newest_first[:5]
            ]
        }
