# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Circuit Breaker - pause fetches from a provider that keeps failing temporarily
"""
import logging
import time
from enum import Enum
from threading import Lock
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"        # fetches flow
    OPEN = "open"            # fetches are refused until the cool-down ends
    HALF_OPEN = "half_open"  # one trial call decides whether to close again


class CircuitBreaker:
    """
    Counts consecutive temporary failures for one provider

    The executor asks `allow_request()` before each attempt and reports the
    result with `record_success()` / `record_failure()`. Once
    `failure_threshold` failures pile up the breaker opens; after
    `recovery_timeout` seconds it lets a trial call through, and `success_threshold`
    trial successes close it again.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        name: Optional[str] = None,
        success_threshold: int = 1,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.name = name or "provider"
        self._clock = clock

        self._lock = Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._trial_successes = 0
        self._opened_at: Optional[float] = None

        self._stats = {'successes': 0, 'failures': 0, 'rejected': 0, 'times_opened': 0}

    @property
    def state(self) -> str:
        with self._lock:
            return self._current_state().value

    def seconds_until_retry(self) -> float:
        """Remaining cool-down while open, else 0"""
        with self._lock:
            if self._current_state() != CircuitState.OPEN:
                return 0.0
            return max(0.0, self.recovery_timeout - (self._clock() - self._opened_at))

    def allow_request(self) -> bool:
        with self._lock:
            if self._current_state() == CircuitState.OPEN:
                self._stats['rejected'] += 1
                logger.warning(f"{self.name}: breaker open, refusing fetch")
                return False
            return True

    def record_success(self):
        with self._lock:
            self._stats['successes'] += 1
            state = self._current_state()
            if state == CircuitState.HALF_OPEN:
                self._trial_successes += 1
                if self._trial_successes >= self.success_threshold:
                    logger.info(f"{self.name}: trial call succeeded, closing breaker")
                    self._close()
            else:
                self._consecutive_failures = 0

    def record_failure(self):
        with self._lock:
            self._stats['failures'] += 1
            state = self._current_state()
            if state == CircuitState.HALF_OPEN:
                logger.warning(f"{self.name}: trial call failed, reopening breaker")
                self._trip()
                return

            self._consecutive_failures += 1
            if state == CircuitState.CLOSED and self._consecutive_failures >= self.failure_threshold:
                logger.error(f"{self.name}: {self._consecutive_failures} consecutive failures, "
                             f"pausing fetches for {self.recovery_timeout}s")
                self._trip()

    def get_statistics(self) -> dict:
        with self._lock:
            return {
                'name': self.name,
                'state': self._current_state().value,
                'total_successes': self._stats['successes'],
                'total_failures': self._stats['failures'],
                'rejected_calls': self._stats['rejected'],
                'current_failure_count': self._consecutive_failures,
                'circuit_opened_count': self._stats['times_opened'],
            }

    # Callers hold self._lock for the helpers below

    def _current_state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.recovery_timeout:
            logger.info(f"{self.name}: cool-down over, allowing a trial call")
            self._state = CircuitState.HALF_OPEN
            self._trial_successes = 0
        return self._state

    def _trip(self):
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._consecutive_failures = 0
        self._trial_successes = 0
        self._stats['times_opened'] += 1

    def _close(self):
        self._state = CircuitState.CLOSED
        self._opened_at = None
        self._consecutive_failures = 0
        self._trial_successes = 0
