from utils.timezone import utc_now, ensure_utc, format_utc_time
from utils.retry import RetryPolicy, RetryAttempt, wait_for_retry
from utils.circuit_breaker import CircuitBreaker, CircuitState
from utils.logger import StructuredLogger, JsonFormatter, configure_logging
from utils.metrics import MetricsCollector

__all__ = [
    'utc_now',
    'ensure_utc',
    'format_utc_time',
    'RetryPolicy',
    'RetryAttempt',
    'wait_for_retry',
    'CircuitBreaker',
    'CircuitState',
    'StructuredLogger',
    'JsonFormatter',
    'configure_logging',
    'MetricsCollector',
]
