# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
HTTP plumbing shared by the provider adapters
"""
import base64
import logging
import time
from typing import Callable, Dict, Optional, Tuple

import requests

import config
from cal_ops.errors import ExternalCalendarPermanentError, ExternalCalendarTemporaryError
from models import ErrorCode
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)

# Status codes with an explicit classification; everything else fails closed
RETRYABLE_STATUS_CODES = {
    429: ErrorCode.RATE_LIMITED,
    500: ErrorCode.SERVER_ERROR,
    502: ErrorCode.SERVER_ERROR,
    503: ErrorCode.SERVER_ERROR,
    504: ErrorCode.SERVER_ERROR,
}
PERMANENT_STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
}


def classify_http_status(status_code: int) -> Tuple[ErrorCode, bool]:
    """Map an HTTP status to (error code, is_retryable)"""
    if status_code in RETRYABLE_STATUS_CODES:
        return RETRYABLE_STATUS_CODES[status_code], True
    if status_code in PERMANENT_STATUS_CODES:
        return PERMANENT_STATUS_CODES[status_code], False
    return ErrorCode.HTTP_ERROR, False


def raise_for_provider_status(provider: str, response: requests.Response):
    """Raise a typed integration error for any non-2xx response"""
    status = response.status_code
    if 200 <= status < 300:
        return

    error_code, retryable = classify_http_status(status)
    message = f"{provider} API returned HTTP {status}"
    if status in (401, 403):
        message += " - access token was rejected, re-authentication is required"

    if retryable:
        raise ExternalCalendarTemporaryError(provider, message, error_code=error_code.value)
    raise ExternalCalendarPermanentError(provider, message, error_code=error_code.value)


def bearer_headers(access_token: str) -> Dict[str, str]:
    return {
        'Authorization': f'Bearer {access_token}',
        'Accept': 'application/json',
    }


def caldav_auth_header(access_token: str) -> str:
    """CalDAV servers take Basic for "user:password" credentials, Bearer otherwise"""
    if ':' in access_token and ' ' not in access_token:
        encoded = base64.b64encode(access_token.encode('utf-8')).decode('ascii')
        return f'Basic {encoded}'
    return f'Bearer {access_token}'


class HttpClientFactory:
    """Builds one configured requests.Session per provider call"""

    def __init__(
        self,
        timeout: float = None,
        user_agent: str = None,
        session_factory: Callable[[], requests.Session] = requests.Session
    ):
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT
        self.user_agent = user_agent or config.USER_AGENT
        self._session_factory = session_factory

    def create(self, provider: str) -> requests.Session:
        session = self._session_factory()
        session.headers.update({'User-Agent': self.user_agent})
        logger.debug(f"Created HTTP session for {provider}")
        return session


class ProviderHttpClient:
    """GET-and-decode helper that logs every provider call"""

    def __init__(self, provider: str, client_factory: Optional[HttpClientFactory] = None):
        self.provider = provider
        self.client_factory = client_factory or HttpClientFactory()
        self.structured_logger = StructuredLogger(f"{__name__}.{provider}")

    def get_json(self, url: str, headers: Dict[str, str], params: Optional[Dict] = None) -> Dict:
        """Issue a GET and return the decoded JSON object.

        Network exceptions from requests propagate unchanged so the retry
        executor can classify them. Non-2xx responses raise typed integration
        errors, and an undecodable body raises a permanent error.
        """
        started = time.monotonic()
        with self.client_factory.create(self.provider) as session:
            try:
                response = session.get(url, headers=headers, params=params, timeout=self.client_factory.timeout)
            except requests.exceptions.RequestException as e:
                self.structured_logger.log_api_call(
                    'GET', url, duration_ms=(time.monotonic() - started) * 1000,
                    error=f"{type(e).__name__}: {e}", provider=self.provider
                )
                raise

        self.structured_logger.log_api_call(
            'GET', url, status_code=response.status_code,
            duration_ms=(time.monotonic() - started) * 1000, provider=self.provider
        )

        if response.status_code >= 400:
            logger.error(f"{self.provider} request failed: {response.status_code}")
            logger.debug(f"Response: {response.text[:500]}")
        raise_for_provider_status(self.provider, response)

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalCalendarPermanentError(
                self.provider,
                f"{self.provider} API returned a body that is not valid JSON",
                error_code=ErrorCode.MALFORMED_RESPONSE.value
            ) from e

        if not isinstance(data, dict):
            raise ExternalCalendarPermanentError(
                self.provider,
                f"{self.provider} API returned an unexpected payload type: {type(data).__name__}",
                error_code=ErrorCode.MALFORMED_RESPONSE.value
            )

        return data
