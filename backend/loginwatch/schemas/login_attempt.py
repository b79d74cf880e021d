from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

from loginwatch.models.login_attempt import FailureReason, LoginMethod, SuspiciousReason

MetadataKey = Annotated[str, StringConstraints(min_length=1, max_length=64)]
MetadataValue = str | int | float | bool | None


class LocationInfo(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    country: str | None = None
    city: str | None = None
    region: str | None = None
    timezone: str | None = None


class DeviceInfo(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    browser: str | None = None
    os: str | None = None
    device: str | None = None
    is_mobile: bool = False


class LoginAttemptCreate(BaseModel):
    """Input accepted by the ingestion service."""

    email: str
    success: bool
    failure_reason: FailureReason | None = None
    ip_address: str
    user_agent: str
    login_method: LoginMethod = LoginMethod.EMAIL_PASSWORD
    location: LocationInfo | None = None
    device_info: DeviceInfo | None = None
    user_id: UUID | None = None
    metadata: dict[MetadataKey, MetadataValue] | None = Field(default=None, max_length=50)
    attempted_at: datetime | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("email must not be empty")
        return v

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("ip_address must not be empty")
        return v

    @field_validator("user_agent")
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("user_agent must not be empty")
        return v

    @model_validator(mode="after")
    def check_failure_reason(self) -> "LoginAttemptCreate":
        if not self.success and self.failure_reason is None:
            raise ValueError("failure_reason is required when success is false")
        if self.success and self.failure_reason is not None:
            raise ValueError("failure_reason must be empty when success is true")
        return self


class LoginAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None
    email: str
    success: bool
    failure_reason: FailureReason | None
    ip_address: str
    user_agent: str
    location: LocationInfo | None
    device_info: DeviceInfo | None
    login_method: LoginMethod
    attempted_at: datetime
    is_suspicious: bool
    suspicious_reasons: list[SuspiciousReason]
    session_duration_ms: int | None


class DailyStatistic(BaseModel):
    date: date
    total: int
    success: int
    failed: int


class LoginSummary(BaseModel):
    period_days: int
    total_attempts: int
    successful_logins: int
    failed_logins: int
    success_rate: int  # Rounded percentage
    daily_statistics: list[DailyStatistic]
    suspicious_activity: list[LoginAttemptResponse]


class AttemptFilter(BaseModel):
    success: bool | None = None
    suspicious: bool | None = None
    email: str | None = None  # Case-insensitive substring
    ip_address: str | None = None
    days: int | None = Field(default=7, ge=1)


class AttemptPage(BaseModel):
    items: list[LoginAttemptResponse]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class RateLimitStatus(BaseModel):
    is_limited: bool
    remaining_attempts: int
    reset_time: datetime | None = None
