"""
Ingestion service: the single write path for login attempts.

Usage:
    from loginwatch.services.ingestion import IngestionService

    async with async_session_maker() as db:
        attempt_id = await IngestionService(db).submit(
            email="student@example.com",
            success=False,
            failure_reason=FailureReason.INVALID_CREDENTIALS,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            device_info=context.device_info,
            location=context.location,
        )

Each call commits its own work; use one session per attempt.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loginwatch.core.config import Settings, settings as default_settings
from loginwatch.core.exceptions import ClassificationError, NotFoundError, ValidationError
from loginwatch.core.logging import mask_email
from loginwatch.models.login_attempt import (
    FailureReason,
    LoginAttempt,
    LoginMethod,
    SuspiciousReason,
    ensure_utc,
)
from loginwatch.schemas.login_attempt import DeviceInfo, LocationInfo, LoginAttemptCreate
from loginwatch.services.attempt_store import AttemptStore
from loginwatch.services.classifier import classify

logger = logging.getLogger(__name__)


def _validation_error_from_pydantic(exc: PydanticValidationError) -> ValidationError:
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "attempt"
        message = err["msg"].removeprefix("Value error, ")
        errors.append({"field": field, "message": message})
    return ValidationError(errors)


class IngestionService:
    """Records login attempts and maintains their mutable fields."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or default_settings
        self.store = AttemptStore(db)

    async def submit(
        self,
        email: str,
        success: bool,
        ip_address: str,
        user_agent: str,
        failure_reason: FailureReason | str | None = None,
        login_method: LoginMethod | str = LoginMethod.EMAIL_PASSWORD,
        location: LocationInfo | dict | None = None,
        device_info: DeviceInfo | dict | None = None,
        user_id: uuid.UUID | None = None,
        metadata: dict[str, Any] | None = None,
        attempted_at: datetime | None = None,
    ) -> uuid.UUID:
        """
        Validate, classify and persist one login attempt.

        Returns:
            The id of the new record

        Raises:
            ValidationError: malformed input, nothing persisted
            StoreUnavailableError: the attempt could not be durably recorded
        """
        try:
            data = LoginAttemptCreate(
                email=email,
                success=success,
                failure_reason=failure_reason,
                ip_address=ip_address,
                user_agent=user_agent,
                login_method=login_method,
                location=location,
                device_info=device_info,
                user_id=user_id,
                metadata=metadata,
                attempted_at=attempted_at,
            )
        except PydanticValidationError as e:
            raise _validation_error_from_pydantic(e) from e

        attempted_at = ensure_utc(data.attempted_at) if data.attempted_at else datetime.now(UTC)

        reasons: set[SuspiciousReason] = set()
        if not data.success:
            reasons = await self._classify(data.email, attempted_at)

        attempt = LoginAttempt(
            id=uuid.uuid4(),
            user_id=data.user_id,
            email=data.email,
            success=data.success,
            failure_reason=data.failure_reason,
            ip_address=data.ip_address,
            user_agent=data.user_agent,
            location=data.location.model_dump(exclude_none=True) if data.location else None,
            device_info=data.device_info.model_dump(exclude_none=True) if data.device_info else None,
            login_method=data.login_method,
            attempted_at=attempted_at,
            is_suspicious=bool(reasons),
            suspicious_reasons=sorted(r.value for r in reasons),
            extra_metadata=data.metadata,
        )

        attempt_id = await self.store.record(attempt)
        await self.store.commit()

        self._log_attempt(attempt, reasons)
        return attempt_id

    async def submit_success(
        self,
        email: str,
        ip_address: str,
        user_agent: str,
        user_id: uuid.UUID | None = None,
        **kwargs: Any,
    ) -> uuid.UUID:
        """Record a successful login."""
        return await self.submit(
            email=email,
            success=True,
            ip_address=ip_address,
            user_agent=user_agent,
            user_id=user_id,
            **kwargs,
        )

    async def submit_failure(
        self,
        email: str,
        failure_reason: FailureReason | str,
        ip_address: str,
        user_agent: str,
        **kwargs: Any,
    ) -> uuid.UUID:
        """Record a failed login; the attempt is classified before it is stored."""
        return await self.submit(
            email=email,
            success=False,
            failure_reason=failure_reason,
            ip_address=ip_address,
            user_agent=user_agent,
            **kwargs,
        )

    async def _classify(self, email: str, attempted_at: datetime) -> set[SuspiciousReason]:
        """Classify a failed attempt, failing open on history errors."""
        try:
            return await classify(self.store, email, attempted_at, self.settings)
        except ClassificationError as e:
            logger.warning(
                "Suspicion classification skipped for %s: %s", mask_email(email), e.reason
            )
            # Clear any aborted transaction so the write can proceed
            try:
                await self.db.rollback()
            except SQLAlchemyError as rollback_error:
                logger.debug("Rollback after classification failure failed: %s", rollback_error)
            return set()

    def _log_attempt(self, attempt: LoginAttempt, reasons: set[SuspiciousReason]) -> None:
        outcome = "SUCCESS" if attempt.success else f"FAILED ({attempt.failure_reason.value})"
        message = "Login attempt: %s from %s - %s"
        args = (mask_email(attempt.email), attempt.ip_address, outcome)

        if reasons:
            logger.warning(
                "[SECURITY] Suspicious login attempt detected: " + message + " reasons=%s",
                *args,
                ",".join(sorted(r.value for r in reasons)),
            )
        elif attempt.success:
            logger.info(message, *args)
        else:
            logger.debug(message, *args)

    async def _get_or_raise(self, attempt_id: uuid.UUID) -> LoginAttempt:
        attempt = await self.store.get(attempt_id)
        if attempt is None:
            raise NotFoundError(attempt_id)
        return attempt

    async def reflag(
        self,
        attempt_id: uuid.UUID,
        reasons: Iterable[SuspiciousReason | str],
    ) -> LoginAttempt:
        """
        Mark an attempt as suspicious, adding reasons to the existing set.

        Applying the same reasons again leaves the record unchanged.
        """
        try:
            new_reasons = [SuspiciousReason(r) for r in reasons]
        except ValueError as e:
            raise ValidationError.single("suspicious_reasons", str(e)) from e

        attempt = await self._get_or_raise(attempt_id)

        existing = attempt.reasons
        merged = list(attempt.suspicious_reasons or [])
        for reason in new_reasons:
            if reason not in existing:
                existing.add(reason)
                merged.append(reason.value)

        # Assign a new list so the JSON column is marked dirty
        attempt.suspicious_reasons = merged
        attempt.is_suspicious = True
        await self.store.commit()

        logger.info(
            "Login attempt %s re-flagged as suspicious: %s", attempt_id, ",".join(merged)
        )
        return attempt

    async def close_session(self, attempt_id: uuid.UUID) -> LoginAttempt:
        """Record how long the session opened by a successful attempt lasted."""
        attempt = await self._get_or_raise(attempt_id)
        if not attempt.success:
            return attempt

        elapsed = datetime.now(UTC) - ensure_utc(attempt.attempted_at)
        attempt.session_duration_ms = max(0, int(elapsed.total_seconds() * 1000))
        await self.store.commit()
        return attempt
