"""Error classes and failure taxonomy for TravelRelay."""
from enum import Enum
from typing import Optional


class ErrorClass(str, Enum):
    """Classification of an upstream failure.

    Values mirror the error-class keys used in logs and metrics.
    """
    RATE_LIMIT = "429"
    TIMEOUT = "timeout"
    NETWORK = "net"
    TERMINAL = "no-retry"

    @property
    def is_transient(self) -> bool:
        """Whether a failure of this class is worth retrying."""
        return self is not ErrorClass.TERMINAL


class UpstreamError(Exception):
    """Final failure of a resilient upstream call.

    The original exception (if any) is kept on ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        error_class: ErrorClass = ErrorClass.TERMINAL,
        status_code: Optional[int] = None,
        attempts: int = 0,
    ):
        """
        Args:
            message: Human-readable message of the underlying failure
            operation: Operation name passed to the executor
            error_class: Classification of the last failure
            status_code: Upstream HTTP status code, if one was observed
            attempts: Number of attempts made before giving up
        """
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.error_class = error_class
        self.status_code = status_code
        self.attempts = attempts

    @property
    def is_transient(self) -> bool:
        return self.error_class.is_transient


class TransientUpstreamError(UpstreamError):
    """Transient failure (rate limit, network) that survived every retry."""


class UpstreamTimeoutError(TransientUpstreamError):
    """The call did not settle before the deadline."""

    def __init__(self, operation: str, timeout_s: float, attempts: int = 0):
        super().__init__(
            f"{operation} timed out after {int(timeout_s * 1000)}ms",
            operation=operation,
            error_class=ErrorClass.TIMEOUT,
            attempts=attempts,
        )
        self.timeout_s = timeout_s


class TerminalUpstreamError(UpstreamError):
    """Non-transient failure, propagated without retry."""


def failure_message(error: BaseException, action: str, subject: str = "Upstream") -> str:
    """Build the collaborator-facing message for a failed call.

    Timeouts and rate limits get a friendlier text; everything else is
    reported as ``Error <action>: <message>``.

    Args:
        error: Exception raised by the executor
        action: What was being done, e.g. "searching flights"
        subject: Short name of the request, e.g. "Flight search"
    """
    message = str(error) or "Unknown error"
    error_class = getattr(error, "error_class", None)
    lowered = message.lower()

    if error_class is ErrorClass.TIMEOUT or "timed out" in lowered or "timeout" in lowered:
        return (
            f"{subject} request timed out. The upstream API may be "
            "experiencing delays. Please try again in a few moments."
        )
    if error_class is ErrorClass.RATE_LIMIT or "429" in message or "rate limit" in lowered:
        return f"{subject} rate limit exceeded. Please wait a moment before trying again."
    return f"Error {action}: {message}"
