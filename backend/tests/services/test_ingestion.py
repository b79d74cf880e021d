"""Tests for the ingestion service."""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from loginwatch.core.exceptions import NotFoundError, StoreUnavailableError, ValidationError
from loginwatch.models.login_attempt import FailureReason, LoginAttempt, LoginMethod, SuspiciousReason
from loginwatch.services.ingestion import IngestionService

UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0.0.0 Safari/537.36"


async def _count(session) -> int:
    result = await session.execute(select(func.count()).select_from(LoginAttempt))
    return result.scalar()


def _failed(**overrides):
    params = {
        "email": "x@y.com",
        "success": False,
        "failure_reason": FailureReason.INVALID_CREDENTIALS,
        "ip_address": "198.51.100.7",
        "user_agent": UA,
    }
    params.update(overrides)
    return params


class TestSubmitValidation:
    """Tests for input validation on submit."""

    @pytest.mark.asyncio
    async def test_failed_attempt_requires_failure_reason(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.submit(**_failed(failure_reason=None))

        assert "failure_reason is required" in str(exc_info.value)
        assert await _count(test_session) == 0

    @pytest.mark.asyncio
    async def test_successful_attempt_rejects_failure_reason(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)

        with pytest.raises(ValidationError):
            await service.submit(**_failed(success=True))

        assert await _count(test_session) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["email", "ip_address", "user_agent"])
    async def test_blank_required_field_is_rejected(self, test_session, test_settings, field):
        service = IngestionService(test_session, test_settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.submit(**_failed(**{field: "   "}))

        assert exc_info.value.errors[0]["field"] == field
        assert await _count(test_session) == 0

    @pytest.mark.asyncio
    async def test_unknown_failure_reason_is_rejected(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)

        with pytest.raises(ValidationError):
            await service.submit(**_failed(failure_reason="WRONG_PASSWORD_MAYBE"))

    @pytest.mark.asyncio
    async def test_nested_metadata_is_rejected(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)

        with pytest.raises(ValidationError):
            await service.submit(**_failed(metadata={"client": {"name": "web"}}))

    @pytest.mark.asyncio
    async def test_oversized_metadata_is_rejected(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        metadata = {f"key{i}": i for i in range(51)}

        with pytest.raises(ValidationError):
            await service.submit(**_failed(metadata=metadata))


class TestSubmit:
    """Tests for persisting attempts."""

    @pytest.mark.asyncio
    async def test_submit_normalizes_and_persists(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        user_id = uuid.uuid4()

        attempt_id = await service.submit(
            email="  Student@Example.COM ",
            success=True,
            ip_address="198.51.100.7",
            user_agent=UA,
            login_method=LoginMethod.ADMIN_LOGIN,
            device_info={"browser": "Chrome 120", "os": "Windows 10", "device": "desktop"},
            location={"country": "Romania", "city": "Cluj-Napoca"},
            user_id=user_id,
            metadata={"client": "web", "attempt": 1},
        )

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.email == "student@example.com"
        assert attempt.success is True
        assert attempt.failure_reason is None
        assert attempt.login_method == LoginMethod.ADMIN_LOGIN
        assert attempt.user_id == user_id
        assert attempt.location == {"country": "Romania", "city": "Cluj-Napoca"}
        assert attempt.device_info["is_mobile"] is False
        assert attempt.extra_metadata == {"client": "web", "attempt": 1}
        assert attempt.is_suspicious is False
        assert attempt.suspicious_reasons == []
        assert attempt.attempted_at is not None

    @pytest.mark.asyncio
    async def test_long_user_agent_is_stored_verbatim(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        user_agent = UA + " " + "A" * 600

        attempt_id = await service.submit(**_failed(user_agent=user_agent))

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.user_agent == user_agent

    @pytest.mark.asyncio
    async def test_long_email_is_accepted(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        email = "A" * 260 + "@Y.com"

        attempt_id = await service.submit(**_failed(email=email))

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.email == email.lower()
        assert len(attempt.email) > 255

    @pytest.mark.asyncio
    async def test_long_ip_value_is_stored_verbatim(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        ip_address = "203.0.113.10, " + ", ".join(f"10.0.0.{i}" for i in range(1, 8))

        attempt_id = await service.submit(**_failed(ip_address=ip_address))

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.ip_address == ip_address
        assert len(attempt.ip_address) > 45

    @pytest.mark.asyncio
    async def test_submit_success_records_successful_attempt(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        user_id = uuid.uuid4()

        attempt_id = await service.submit_success(
            "Student@Example.com", "198.51.100.7", UA, user_id=user_id,
            login_method=LoginMethod.TOKEN_REFRESH,
        )

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.success is True
        assert attempt.failure_reason is None
        assert attempt.user_id == user_id
        assert attempt.login_method == LoginMethod.TOKEN_REFRESH

    @pytest.mark.asyncio
    async def test_submit_failure_records_reason_and_classifies(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        base = datetime.now(UTC) - timedelta(minutes=5)

        for i in range(5):
            attempt_id = await service.submit_failure(
                "x@y.com", FailureReason.USER_NOT_FOUND, "198.51.100.7", UA,
                attempted_at=base + timedelta(seconds=30 * i),
            )

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.success is False
        assert attempt.failure_reason == FailureReason.USER_NOT_FOUND
        assert attempt.reasons == {SuspiciousReason.MULTIPLE_FAILED_ATTEMPTS}

    @pytest.mark.asyncio
    async def test_submit_failure_requires_known_reason(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)

        with pytest.raises(ValidationError):
            await service.submit_failure("x@y.com", "NOT_A_REASON", "198.51.100.7", UA)

        assert await _count(test_session) == 0

    @pytest.mark.asyncio
    async def test_successful_attempts_are_never_flagged(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        base = datetime.now(UTC) - timedelta(minutes=5)

        for i in range(6):
            await service.submit(**_failed(attempted_at=base + timedelta(seconds=i)))
        attempt_id = await service.submit(
            email="x@y.com",
            success=True,
            ip_address="198.51.100.7",
            user_agent=UA,
            attempted_at=base + timedelta(seconds=7),
        )

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.is_suspicious is False
        assert attempt.suspicious_reasons == []

    @pytest.mark.asyncio
    async def test_fifth_failure_in_window_is_flagged(self, test_session, test_settings):
        """Failures at t=0,10,20,30 minutes, then t=35: only the fifth is flagged."""
        service = IngestionService(test_session, test_settings)
        base = datetime.now(UTC) - timedelta(minutes=50)

        ids = []
        for minutes in (0, 10, 20, 30, 35):
            ids.append(await service.submit(**_failed(attempted_at=base + timedelta(minutes=minutes))))

        other_id = await service.submit(
            **_failed(email="someone.else@y.com", attempted_at=base + timedelta(minutes=40))
        )

        for attempt_id in ids[:4]:
            attempt = await test_session.get(LoginAttempt, attempt_id)
            assert attempt.is_suspicious is False
            assert attempt.suspicious_reasons == []

        fifth = await test_session.get(LoginAttempt, ids[4])
        assert fifth.is_suspicious is True
        assert SuspiciousReason.MULTIPLE_FAILED_ATTEMPTS.value in fifth.suspicious_reasons

        other = await test_session.get(LoginAttempt, other_id)
        assert other.is_suspicious is False

    @pytest.mark.asyncio
    async def test_failures_outside_window_do_not_count(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        base = datetime.now(UTC) - timedelta(hours=3)

        for minutes in (0, 20, 40, 60):
            await service.submit(**_failed(attempted_at=base + timedelta(minutes=minutes)))
        attempt_id = await service.submit(**_failed(attempted_at=base + timedelta(minutes=125)))

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.is_suspicious is False

    @pytest.mark.asyncio
    async def test_failures_five_seconds_apart_are_rapid(self, test_session, test_settings, caplog):
        service = IngestionService(test_session, test_settings)
        base = datetime.now(UTC) - timedelta(minutes=1)

        first_id = await service.submit(**_failed(attempted_at=base))
        with caplog.at_level(logging.WARNING, logger="loginwatch.services.ingestion"):
            second_id = await service.submit(**_failed(attempted_at=base + timedelta(seconds=5)))

        first = await test_session.get(LoginAttempt, first_id)
        second = await test_session.get(LoginAttempt, second_id)
        assert first.suspicious_reasons == []
        assert second.suspicious_reasons == [SuspiciousReason.RAPID_ATTEMPTS.value]
        assert "[SECURITY] Suspicious login attempt detected" in caplog.text
        assert "x***@y.com" in caplog.text
        assert "x@y.com" not in caplog.text

    @pytest.mark.asyncio
    async def test_failures_fifteen_seconds_apart_are_not_rapid(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        base = datetime.now(UTC) - timedelta(minutes=1)

        first_id = await service.submit(**_failed(attempted_at=base))
        second_id = await service.submit(**_failed(attempted_at=base + timedelta(seconds=15)))

        for attempt_id in (first_id, second_id):
            attempt = await test_session.get(LoginAttempt, attempt_id)
            assert attempt.is_suspicious is False

    @pytest.mark.asyncio
    async def test_classification_failure_fails_open(self, test_session, test_settings, caplog):
        """A broken history query still records the attempt, unflagged."""
        service = IngestionService(test_session, test_settings)
        error = OperationalError("SELECT count(*)", {}, Exception("database is locked"))

        with patch.object(service.store, "count_failures", side_effect=error):
            with caplog.at_level(logging.WARNING, logger="loginwatch.services.ingestion"):
                attempt_id = await service.submit(**_failed())

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt is not None
        assert attempt.is_suspicious is False
        assert "Suspicion classification skipped" in caplog.text

    @pytest.mark.asyncio
    async def test_store_unavailable_on_write_fails_closed(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        error = OperationalError("COMMIT", {}, Exception("connection reset"))

        with patch.object(test_session, "commit", side_effect=error):
            with pytest.raises(StoreUnavailableError) as exc_info:
                await service.submit(**_failed(success=True, failure_reason=None))

        assert "connection reset" in exc_info.value.reason


class TestReflag:
    """Tests for manual re-flagging."""

    @pytest.mark.asyncio
    async def test_reflag_is_idempotent(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        attempt_id = await service.submit(**_failed())

        reasons = {SuspiciousReason.UNUSUAL_LOCATION, SuspiciousReason.UNUSUAL_DEVICE}
        once = list((await service.reflag(attempt_id, reasons)).suspicious_reasons)
        twice = list((await service.reflag(attempt_id, reasons)).suspicious_reasons)

        assert once == twice
        assert sorted(twice) == ["UNUSUAL_DEVICE", "UNUSUAL_LOCATION"]

        attempt = await test_session.get(LoginAttempt, attempt_id)
        assert attempt.is_suspicious is True

    @pytest.mark.asyncio
    async def test_reflag_keeps_existing_reasons(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        base = datetime.now(UTC) - timedelta(minutes=1)
        await service.submit(**_failed(attempted_at=base))
        attempt_id = await service.submit(**_failed(attempted_at=base + timedelta(seconds=2)))

        attempt = await service.reflag(attempt_id, ["BRUTE_FORCE_PATTERN", "RAPID_ATTEMPTS"])

        assert attempt.suspicious_reasons == ["RAPID_ATTEMPTS", "BRUTE_FORCE_PATTERN"]

    @pytest.mark.asyncio
    async def test_reflag_unknown_reason_is_rejected(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        attempt_id = await service.submit(**_failed())

        with pytest.raises(ValidationError):
            await service.reflag(attempt_id, ["LOOKS_ODD"])

    @pytest.mark.asyncio
    async def test_reflag_missing_attempt_raises_not_found(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        missing = uuid.uuid4()

        with pytest.raises(NotFoundError) as exc_info:
            await service.reflag(missing, [SuspiciousReason.UNUSUAL_DEVICE])

        assert exc_info.value.attempt_id == missing


class TestCloseSession:
    """Tests for recording session duration."""

    @pytest.mark.asyncio
    async def test_close_session_records_duration(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        attempt_id = await service.submit(
            email="x@y.com",
            success=True,
            ip_address="198.51.100.7",
            user_agent=UA,
            attempted_at=datetime.now(UTC) - timedelta(minutes=2),
        )

        attempt = await service.close_session(attempt_id)

        assert 120_000 <= attempt.session_duration_ms < 180_000

    @pytest.mark.asyncio
    async def test_close_session_ignores_failed_attempts(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)
        attempt_id = await service.submit(**_failed())

        attempt = await service.close_session(attempt_id)

        assert attempt.session_duration_ms is None

    @pytest.mark.asyncio
    async def test_close_session_missing_attempt_raises_not_found(self, test_session, test_settings):
        service = IngestionService(test_session, test_settings)

        with pytest.raises(NotFoundError):
            await service.close_session(uuid.uuid4())
