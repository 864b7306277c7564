"""
Error taxonomy for the sync layer.

HTTP outcomes are mapped onto these exceptions by the API client. The
FetchCoordinator re-raises them unmodified; classification into retry
behavior happens at each call site via RetryPolicy.
"""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """How a failure should be treated by the caller."""
    TRANSIENT = "transient"                       # network / 5xx, retryable up to budget
    RATE_LIMITED = "rate_limited"                 # 429, terminal for the session
    ABSENT = "absent"                             # 404, a successful empty outcome
    AUTH_REQUIRED = "auth_required"               # caller is not authenticated
    VALIDATION_REJECTED = "validation_rejected"   # mutation payload rejected


class SyncError(Exception):
    """Base class for all sync layer errors."""
    pass


class AuthRequiredError(SyncError):
    """Raised before any network I/O when the caller is not ready to fetch."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class FetchTimeoutError(SyncError):
    """Raised to a waiter that gave up on a coalesced in-flight fetch."""
    pass


class ApiError(SyncError):
    """An HTTP-level failure reported by the inventory API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class TransientError(ApiError):
    """Network failure or 5xx response."""
    pass


class RateLimitedError(ApiError):
    """429 Too Many Requests."""

    def __init__(
        self,
        message: str = "Too many requests",
        status_code: Optional[int] = 429,
        retry_after_seconds: Optional[int] = None,
    ):
        super().__init__(message, status_code)
        self.retry_after_seconds = retry_after_seconds


class NotFoundError(ApiError):
    """404 - the resource has no data yet."""
    pass


class ValidationRejectedError(ApiError):
    """400/422 - the server rejected a mutation payload."""
    pass


def error_for_status(
    status_code: int,
    message: str,
    retry_after_seconds: Optional[int] = None,
) -> Exception:
    """Build the taxonomy exception for an HTTP error status."""
    if status_code == 429:
        return RateLimitedError(message, status_code, retry_after_seconds)
    if status_code == 404:
        return NotFoundError(message, status_code)
    if status_code in (401, 403):
        return AuthRequiredError(message)
    if status_code in (400, 409, 422):
        return ValidationRejectedError(message, status_code)
    return TransientError(message, status_code)
