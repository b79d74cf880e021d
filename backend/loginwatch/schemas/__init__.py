from loginwatch.schemas.login_attempt import (
    AttemptFilter,
    AttemptPage,
    DailyStatistic,
    DeviceInfo,
    LocationInfo,
    LoginAttemptCreate,
    LoginAttemptResponse,
    LoginSummary,
    RateLimitStatus,
)

__all__ = [
    "AttemptFilter",
    "AttemptPage",
    "DailyStatistic",
    "DeviceInfo",
    "LocationInfo",
    "LoginAttemptCreate",
    "LoginAttemptResponse",
    "LoginSummary",
    "RateLimitStatus",
]
