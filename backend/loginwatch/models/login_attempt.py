"""
Login attempt audit trail.

One row per authentication attempt, successful or not. Rows are written
once by the ingestion service and expire after the retention window.
"""

import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import Enum as SAEnum

from loginwatch.db.base import Base, TimestampMixin, UUIDMixin

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class FailureReason(str, Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    WHATSAPP_NOT_VERIFIED = "WHATSAPP_NOT_VERIFIED"
    NO_STUDENT_ACCESS = "NO_STUDENT_ACCESS"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    RATE_LIMITED = "RATE_LIMITED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SERVER_ERROR = "SERVER_ERROR"


class LoginMethod(str, Enum):
    EMAIL_PASSWORD = "EMAIL_PASSWORD"
    TOKEN_REFRESH = "TOKEN_REFRESH"
    ADMIN_LOGIN = "ADMIN_LOGIN"


class SuspiciousReason(str, Enum):
    MULTIPLE_FAILED_ATTEMPTS = "MULTIPLE_FAILED_ATTEMPTS"
    UNUSUAL_LOCATION = "UNUSUAL_LOCATION"  # manual re-flag only
    UNUSUAL_DEVICE = "UNUSUAL_DEVICE"  # manual re-flag only
    RAPID_ATTEMPTS = "RAPID_ATTEMPTS"
    BRUTE_FORCE_PATTERN = "BRUTE_FORCE_PATTERN"  # manual re-flag only


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class LoginAttempt(Base, UUIDMixin, TimestampMixin):
    """A single authentication attempt and the suspicion tags derived for it."""

    __tablename__ = "login_attempts"

    # Weak reference: the user may not exist yet, no foreign key on purpose
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[FailureReason | None] = mapped_column(
        SAEnum(FailureReason, name="failurereason", native_enum=False, length=32),
        nullable=True,
    )
    ip_address: Mapped[str] = mapped_column(Text, nullable=False)  # verbatim, may be a forwarded header value
    user_agent: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    device_info: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    login_method: Mapped[LoginMethod] = mapped_column(
        SAEnum(LoginMethod, name="loginmethod", native_enum=False, length=32),
        nullable=False,
        default=LoginMethod.EMAIL_PASSWORD,
    )
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    is_suspicious: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    suspicious_reasons: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    session_duration_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    __table_args__ = (
        Index("ix_login_attempts_email_attempted", "email", "attempted_at"),
        Index("ix_login_attempts_user_attempted", "user_id", "attempted_at"),
        Index("ix_login_attempts_ip_attempted", "ip_address", "attempted_at"),
        Index("ix_login_attempts_success_attempted", "success", "attempted_at"),
        Index("ix_login_attempts_attempted", "attempted_at"),
        Index("ix_login_attempts_suspicious_attempted", "is_suspicious", "attempted_at"),
        Index(
            "ix_login_attempts_email_ip_success_attempted",
            "email",
            "ip_address",
            "success",
            "attempted_at",
        ),
    )

    @property
    def reasons(self) -> set[SuspiciousReason]:
        return {SuspiciousReason(r) for r in self.suspicious_reasons or []}

    @property
    def is_recent(self) -> bool:
        """True when the attempt happened within the last hour."""
        return ensure_utc(self.attempted_at) > datetime.now(UTC) - timedelta(hours=1)

    def __repr__(self) -> str:
        return f"<LoginAttempt(email={self.email}, ip={self.ip_address}, success={self.success})>"
