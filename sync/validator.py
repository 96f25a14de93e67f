# © 2025 alarm-calendar-sync contributors.
# Released under the MIT License; see the project metadata in pyproject.toml.

"""
Sync Request Validator - reject malformed sync requests before any I/O
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

import config
from cal_ops.errors import SyncValidationError
from models import CalendarProviderName, SyncRequest
from utils.timezone import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class SyncRequestValidator:
    """Validates sync requests; every failing rule contributes one message"""

    def __init__(
        self,
        supported_providers: Optional[Iterable[str]] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.supported_providers = sorted(
            p.lower() for p in (supported_providers or CalendarProviderName.values())
        )
        self.clock = clock
        self.validation_rules = [
            self._validate_user_id,
            self._validate_provider,
            self._validate_access_token,
            self._validate_date_order,
            self._validate_sync_horizon,
            self._validate_from_date,
        ]

    def collect_errors(self, request: SyncRequest) -> List[str]:
        """Run every rule and return the failure messages"""
        now = self.clock()
        errors = []
        for rule in self.validation_rules:
            error = rule(request, now)
            if error:
                errors.append(error)
        return errors

    def validate(self, request: SyncRequest):
        """
        Raises:
            SyncValidationError: listing every rule the request breaks
        """
        errors = self.collect_errors(request)
        if errors:
            logger.warning(f"Sync request rejected: {errors}")
            raise SyncValidationError(errors)

    def _validate_user_id(self, request: SyncRequest, now: datetime) -> Optional[str]:
        user_id = request.user_id
        if isinstance(user_id, str):
            try:
                user_id = uuid.UUID(user_id)
            except ValueError:
                return f"User id '{request.user_id}' is not a valid UUID"
        if not isinstance(user_id, uuid.UUID) or user_id.int == 0:
            return "User id is required"
        return None

    def _validate_provider(self, request: SyncRequest, now: datetime) -> Optional[str]:
        provider = (request.provider or '').strip().lower()
        if provider not in self.supported_providers:
            return (f"Provider must be one of: {', '.join(self.supported_providers)} "
                    f"(got '{request.provider}')")
        return None

    def _validate_access_token(self, request: SyncRequest, now: datetime) -> Optional[str]:
        if not isinstance(request.access_token, str) or not request.access_token.strip():
            return "Access token is required"
        return None

    def _validate_date_order(self, request: SyncRequest, now: datetime) -> Optional[str]:
        if request.sync_from_date is None or request.sync_to_date is None:
            return None
        if ensure_utc(request.sync_to_date) <= ensure_utc(request.sync_from_date):
            return "Sync end date must be after the start date"
        return None

    def _validate_sync_horizon(self, request: SyncRequest, now: datetime) -> Optional[str]:
        if request.sync_to_date is None:
            return None
        horizon = now + timedelta(days=config.MAX_SYNC_HORIZON_DAYS)
        if ensure_utc(request.sync_to_date) > horizon:
            return f"Sync end date cannot be more than {config.MAX_SYNC_HORIZON_DAYS} days in the future"
        return None

    def _validate_from_date(self, request: SyncRequest, now: datetime) -> Optional[str]:
        if request.sync_from_date is None:
            return None
        limit = now + timedelta(days=config.MAX_FROM_DATE_DAYS)
        if ensure_utc(request.sync_from_date) > limit:
            return f"Sync start date cannot be more than {config.MAX_FROM_DATE_DAYS} days in the future"
        return None
