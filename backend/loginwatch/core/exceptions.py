"""Custom exceptions for the login-attempt audit engine."""

import uuid


class LoginWatchError(Exception):
    """Base class for all loginwatch errors."""


class ValidationError(LoginWatchError):
    """Raised when an attempt is malformed; nothing is persisted."""

    def __init__(self, errors: list[dict[str, str]]):
        self.errors = errors
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        super().__init__(f"Invalid login attempt: {summary}")

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}])


class NotFoundError(LoginWatchError):
    """Raised when a login attempt id does not exist."""

    def __init__(self, attempt_id: uuid.UUID):
        self.attempt_id = attempt_id
        super().__init__(f"Login attempt {attempt_id} not found")


class ClassificationError(LoginWatchError):
    """Raised when the history needed for classification cannot be read."""

    def __init__(self, reason: str = "unknown"):
        self.reason = reason
        super().__init__(f"Classification failed: {reason}")


class StoreUnavailableError(LoginWatchError):
    """Raised when the attempt store is unreachable."""

    def __init__(self, reason: str = "unknown"):
        self.reason = reason
        super().__init__(f"Attempt store unavailable: {reason}")


class RetentionError(LoginWatchError):
    """Raised when a retention sweep fails."""

    def __init__(self, reason: str = "unknown"):
        self.reason = reason
        super().__init__(f"Retention sweep failed: {reason}")
