# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Retry Utilities - exponential backoff policy and per-attempt retry context
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff

    Args:
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Delay before the first retry in seconds
        exponential_base: Base for exponential backoff calculation
        max_delay: Optional cap on a single delay in seconds
    """
    max_retries: int = 3
    base_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: Optional[float] = None

    @classmethod
    def from_config(cls) -> 'RetryPolicy':
        return cls(max_retries=config.MAX_RETRIES, base_delay=config.BASE_DELAY)

    def delay_for(self, attempt: int) -> float:
        """delay = base * exponential_base ** attempt, attempt counted from 0"""
        delay = self.base_delay * (self.exponential_base ** attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable context for one attempt; `next()` returns a new value instead of
    mutating a shared counter

    Example:
        attempt = RetryAttempt(policy=RetryPolicy())
        while True:
            try:
                return call()
            except TransientError:
                if attempt.is_last:
                    raise
                wait_for_retry(attempt.delay, cancel_token)
                attempt = attempt.next()
    """
    policy: RetryPolicy
    number: int = 0

    @property
    def is_last(self) -> bool:
        return self.number >= self.policy.max_retries

    @property
    def retries_remaining(self) -> int:
        return max(0, self.policy.max_retries - self.number)

    @property
    def delay(self) -> float:
        """Backoff to wait after this attempt fails"""
        return self.policy.delay_for(self.number)

    def next(self) -> 'RetryAttempt':
        return RetryAttempt(policy=self.policy, number=self.number + 1)


def wait_for_retry(delay: float, cancel_token: Optional[threading.Event] = None) -> bool:
    """
    Sleep for the backoff delay

    Returns False when the cancel token fired during the wait.
    """
    if delay <= 0:
        return not (cancel_token is not None and cancel_token.is_set())

    if cancel_token is None:
        time.sleep(delay)
        return True

    cancelled = cancel_token.wait(delay)
    if cancelled:
        logger.info("Retry wait interrupted by cancellation")
    return not cancelled
