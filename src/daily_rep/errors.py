"""Error kinds surfaced by the daily rep service."""

from enum import StrEnum


class ErrorKind(StrEnum):
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    WEEKLY_LIMIT_REACHED = "WEEKLY_LIMIT_REACHED"
    NO_FOCUS_AREAS = "NO_FOCUS_AREAS"
    NO_ELIGIBLE_REPS = "NO_ELIGIBLE_REPS"
    INVALID_GENERATION_RESPONSE = "INVALID_GENERATION_RESPONSE"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"
    GENERATION_RATE_LIMITED = "GENERATION_RATE_LIMITED"
    GENERATION_PAYMENT_REQUIRED = "GENERATION_PAYMENT_REQUIRED"
    GENERATION_FAILED = "GENERATION_FAILED"
    ASSIGNMENT_NOT_FOUND = "ASSIGNMENT_NOT_FOUND"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"


RETRYABLE_KINDS = frozenset({
    ErrorKind.INVALID_GENERATION_RESPONSE,
    ErrorKind.GENERATION_TIMEOUT,
    ErrorKind.GENERATION_RATE_LIMITED,
})


class DailyRepError(Exception):
    """Raised when a daily rep cannot be granted, selected or written.

    Args:
        kind: Machine-readable error kind.
        message: Human-readable explanation.
        retry_after_days: Days until the request may succeed (weekly limit only).
    """

    def __init__(self, kind: ErrorKind, message: str = "", retry_after_days: int | None = None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value
        self.retry_after_days = retry_after_days

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict:
        data: dict = {"error": self.kind.value, "message": self.message}
        if self.retry_after_days is not None:
            data["retry_after_days"] = self.retry_after_days
        return data
