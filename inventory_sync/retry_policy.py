"""
Failure classification and bounded retry state for one logical operation.

Retries are never scheduled here. The policy only decides what the caller
should show and whether another automatic attempt is allowed; the next
attempt comes from the caller (pull-to-refresh, a retry button).
"""
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from config.settings import settings

from . import sync_log
from .errors import (
    ApiError,
    AuthRequiredError,
    ErrorKind,
    NotFoundError,
    RateLimitedError,
    ValidationRejectedError,
)

logger = logging.getLogger("sync.retry")

MAX_RETRIES = 2

WILL_RETRY_MESSAGE = "Couldn't load {operation}. Pull down to try again ({attempt}/{max_retries})."
FINAL_ERROR_MESSAGE = "Unable to load {operation}. Pull down to refresh."
RATE_LIMITED_MESSAGE = "Too many requests. Please slow down and try again later."
AUTH_REQUIRED_MESSAGE = "Please sign in to load {operation}."


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception onto the error taxonomy."""
    if isinstance(error, RateLimitedError):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, NotFoundError):
        return ErrorKind.ABSENT
    if isinstance(error, AuthRequiredError):
        return ErrorKind.AUTH_REQUIRED
    if isinstance(error, ValidationRejectedError):
        return ErrorKind.VALIDATION_REJECTED
    if isinstance(error, ApiError):
        if error.status_code == 429:
            return ErrorKind.RATE_LIMITED
        if error.status_code == 404:
            return ErrorKind.ABSENT
    return ErrorKind.TRANSIENT


@dataclass
class FetchState:
    """Caller-visible state of one logical operation."""
    loading: bool = False
    refreshing: bool = False
    error: Optional[str] = None
    retry_count: int = 0
    rate_limited: bool = False
    terminal: bool = False


@dataclass(frozen=True)
class RetryOutcome:
    """What the caller should do with a failed attempt."""
    kind: ErrorKind
    will_retry: bool       # another attempt is allowed
    use_fallback: bool     # substitute an empty/zeroed result
    is_failure: bool       # False for absent resources
    message: Optional[str]
    retry_count: int


class RetryPolicy:
    """
    Tracks `retry_count` for one logical operation (e.g. the dashboard
    summary, or one list stream).

    Transitions:
    - Success: retry_count = 0, error cleared
    - Rate limited: terminal immediately, retry_count forced to max
    - Not found: legitimate absence, fallback result, retry_count forced
      to max, no error
    - Anything else: "will retry" while retry_count < max_retries, then
      terminal with a fallback result and a final error

    retry_count is never decremented except by a full reset.
    """

    def __init__(
        self,
        operation: str = "data",
        max_retries: Optional[int] = None,
        classifier: Callable[[BaseException], ErrorKind] = classify_error,
    ):
        """
        Initialize the policy.

        Args:
            operation: Human name of the operation, used in messages and logs
            max_retries: Retry budget (default from settings)
            classifier: Maps exceptions onto ErrorKind
        """
        self.operation = operation
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self._classifier = classifier
        self._state = FetchState()

    @property
    def state(self) -> FetchState:
        """Snapshot of the current state."""
        return replace(self._state)

    @property
    def retry_count(self) -> int:
        return self._state.retry_count

    @property
    def should_auto_fetch(self) -> bool:
        """Whether automatic (not user-initiated) attempts are still allowed."""
        return self._state.retry_count < self.max_retries

    def begin(self, refreshing: bool = False) -> None:
        """Mark an attempt as started."""
        self._state.loading = not refreshing
        self._state.refreshing = refreshing

    def record_success(self) -> None:
        if self._state.retry_count:
            logger.info(f"{self.operation}: recovered after {self._state.retry_count} failed attempt(s)")
        self._state = FetchState()

    def record_failure(self, error: BaseException) -> RetryOutcome:
        """Classify `error` and advance the state machine."""
        kind = self._classifier(error)
        state = self._state
        state.loading = False
        state.refreshing = False

        if kind == ErrorKind.RATE_LIMITED:
            state.retry_count = self.max_retries
            state.rate_limited = True
            state.terminal = True
            state.error = RATE_LIMITED_MESSAGE
            logger.warning(f"{self.operation}: rate limited, no further automatic retries")
            outcome = self._outcome(kind, will_retry=False, use_fallback=False, is_failure=True)

        elif kind == ErrorKind.ABSENT:
            state.retry_count = self.max_retries
            state.error = None
            logger.info(f"{self.operation}: not found, treating as empty")
            return self._outcome(kind, will_retry=False, use_fallback=True, is_failure=False)

        elif kind == ErrorKind.AUTH_REQUIRED:
            state.error = AUTH_REQUIRED_MESSAGE.format(operation=self.operation)
            logger.info(f"{self.operation}: authentication required")
            return self._outcome(kind, will_retry=False, use_fallback=False, is_failure=True)

        elif kind == ErrorKind.VALIDATION_REJECTED:
            state.retry_count = self.max_retries
            state.terminal = True
            state.error = str(error)
            logger.warning(f"{self.operation}: rejected by server: {error}")
            outcome = self._outcome(kind, will_retry=False, use_fallback=False, is_failure=True)

        elif state.retry_count < self.max_retries:
            state.retry_count += 1
            state.error = WILL_RETRY_MESSAGE.format(
                operation=self.operation,
                attempt=state.retry_count,
                max_retries=self.max_retries,
            )
            logger.warning(
                f"{self.operation}: attempt failed ({state.retry_count}/{self.max_retries}): {error}"
            )
            outcome = self._outcome(kind, will_retry=True, use_fallback=False, is_failure=True)

        else:
            state.retry_count = self.max_retries
            state.terminal = True
            state.error = FINAL_ERROR_MESSAGE.format(operation=self.operation)
            logger.error(f"{self.operation}: retry budget exhausted: {error}")
            outcome = self._outcome(kind, will_retry=False, use_fallback=True, is_failure=True)

        sync_log.log_event(
            operation=self.operation,
            kind=kind.value,
            retry_count=outcome.retry_count,
            will_retry=outcome.will_retry,
            used_fallback=outcome.use_fallback,
            status_code=getattr(error, "status_code", None),
            message=outcome.message,
        )
        return outcome

    def reset(self) -> None:
        """Full reset, e.g. when the owning view is recreated."""
        self._state = FetchState()

    def _outcome(
        self,
        kind: ErrorKind,
        will_retry: bool,
        use_fallback: bool,
        is_failure: bool,
    ) -> RetryOutcome:
        return RetryOutcome(
            kind=kind,
            will_retry=will_retry,
            use_fallback=use_fallback,
            is_failure=is_failure,
            message=self._state.error,
            retry_count=self._state.retry_count,
        )
