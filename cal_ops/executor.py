# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Fetch Executor - run one provider fetch under a bounded retry policy and
classify the terminal failure
"""
import logging
import threading
import xml.etree.ElementTree as ET
from datetime import datetime
from threading import Lock
from typing import Dict, Optional, Tuple

import requests

import config
from cal_ops.errors import ExternalCalendarIntegrationError, SyncCancelledError
from cal_ops.http import classify_http_status
from cal_ops.providers import CalendarProvider
from models import CalendarFetchError, CalendarFetchResult, ErrorCode
from utils.circuit_breaker import CircuitBreaker
from utils.retry import RetryAttempt, RetryPolicy, wait_for_retry
from utils.timezone import utc_now

logger = logging.getLogger(__name__)


def classify_exception(error: BaseException) -> Tuple[ErrorCode, bool]:
    """
    Decide (error code, is_retryable) for a failed fetch

    Network faults, throttling and gateway errors are temporary. Credential
    rejection, contract violations and anything unrecognised are permanent.
    """
    if isinstance(error, ExternalCalendarIntegrationError):
        if error.error_code:
            try:
                return ErrorCode(error.error_code), error.is_retryable
            except ValueError:
                pass
        fallback = ErrorCode.SERVER_ERROR if error.is_retryable else ErrorCode.UNKNOWN
        return fallback, error.is_retryable

    # requests' ConnectTimeout is both a Timeout and a ConnectionError
    if isinstance(error, (requests.exceptions.Timeout, TimeoutError)):
        return ErrorCode.TIMEOUT, True

    if isinstance(error, (requests.exceptions.ConnectionError, ConnectionError)):
        return ErrorCode.NETWORK_ERROR, True

    if isinstance(error, requests.exceptions.HTTPError):
        response = error.response
        if response is not None:
            return classify_http_status(response.status_code)
        return ErrorCode.HTTP_ERROR, False

    # JSONDecodeError is a ValueError; ParseError is a SyntaxError
    if isinstance(error, (ValueError, KeyError, TypeError, AttributeError, ET.ParseError)):
        return ErrorCode.MALFORMED_RESPONSE, False

    return ErrorCode.UNKNOWN, False


class CalendarFetchExecutor:
    """Wraps a provider fetch with retries and produces a CalendarFetchResult"""

    def __init__(self, policy: Optional[RetryPolicy] = None, use_circuit_breaker: bool = True,
                 breaker_factory=None):
        self.policy = policy or RetryPolicy.from_config()
        self.use_circuit_breaker = use_circuit_breaker
        self._breaker_factory = breaker_factory or (
            lambda name: CircuitBreaker(
                failure_threshold=config.CIRCUIT_BREAKER_FAIL_MAX,
                recovery_timeout=config.CIRCUIT_BREAKER_RESET_TIMEOUT,
                name=f"{name}-fetch"
            )
        )
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._breakers_lock = Lock()

    def breaker_for(self, provider_name: str) -> Optional[CircuitBreaker]:
        if not self.use_circuit_breaker:
            return None
        with self._breakers_lock:
            if provider_name not in self._breakers:
                self._breakers[provider_name] = self._breaker_factory(provider_name)
            return self._breakers[provider_name]

    def execute(
        self,
        provider: CalendarProvider,
        access_token: str,
        from_date: datetime,
        to_date: datetime,
        cancel_token: Optional[threading.Event] = None
    ) -> CalendarFetchResult:
        """
        Fetch events, retrying temporary failures with exponential backoff

        Returns:
            CalendarFetchResult.success with the events, or
            CalendarFetchResult.failure carrying a classified CalendarFetchError

        Raises:
            SyncCancelledError: if the cancel token fires
        """
        attempt = RetryAttempt(policy=self.policy)
        breaker = self.breaker_for(provider.name)

        while True:
            if cancel_token is not None and cancel_token.is_set():
                raise SyncCancelledError(f"Fetch from {provider.name} cancelled")

            if breaker is not None and not breaker.allow_request():
                error = CalendarFetchError(
                    provider=provider.name,
                    error_code=ErrorCode.CIRCUIT_OPEN.value,
                    message=f"{provider.name} is failing repeatedly; calls are paused for "
                            f"another {breaker.seconds_until_retry():.0f}s",
                    is_retryable=True,
                    occurred_at=utc_now()
                )
                return CalendarFetchResult.failure(error, attempt.number)

            try:
                if attempt.number > 0:
                    logger.info(f"Retry attempt {attempt.number}/{self.policy.max_retries} for {provider.name}")

                events = provider.fetch(access_token, from_date, to_date, cancel_token)

            except SyncCancelledError:
                raise

            except Exception as e:
                error_code, retryable = classify_exception(e)

                if retryable and breaker is not None:
                    breaker.record_failure()

                if retryable and not attempt.is_last:
                    delay = attempt.delay
                    logger.warning(
                        f"Error fetching from {provider.name} (attempt {attempt.number + 1}/"
                        f"{self.policy.max_retries + 1}): {type(e).__name__}: {e}. "
                        f"Retrying in {delay:.1f} seconds..."
                    )
                    if not wait_for_retry(delay, cancel_token):
                        raise SyncCancelledError(f"Fetch from {provider.name} cancelled during backoff") from e
                    attempt = attempt.next()
                    continue

                if retryable:
                    message = f"{provider.name} fetch failed after {attempt.number} retries: {e}"
                    logger.error(f"Max retries ({self.policy.max_retries}) exceeded for {provider.name}. "
                                 f"Final error: {e}")
                else:
                    message = e.message if isinstance(e, ExternalCalendarIntegrationError) else \
                        f"{provider.name} fetch failed: {type(e).__name__}: {e}"
                    logger.error(f"Non-retryable error from {provider.name}: {type(e).__name__}: {e}")

                error = CalendarFetchError(
                    provider=provider.name,
                    error_code=error_code.value,
                    message=message,
                    is_retryable=retryable,
                    occurred_at=utc_now(),
                    original_exception=e,
                    calendar_id=getattr(e, 'calendar_id', None)
                )
                return CalendarFetchResult.failure(error, attempt.number)

            else:
                if breaker is not None:
                    breaker.record_success()
                if attempt.number > 0:
                    logger.info(f"Retry successful for {provider.name} after {attempt.number} retries")
                return CalendarFetchResult.success(events, attempt.number)
