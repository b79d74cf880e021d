from loginwatch.models.login_attempt import (
    FailureReason,
    LoginAttempt,
    LoginMethod,
    SuspiciousReason,
)

__all__ = [
    "FailureReason",
    "LoginAttempt",
    "LoginMethod",
    "SuspiciousReason",
]
