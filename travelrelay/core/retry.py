"""Resilient call executor: cache short-circuit, deadline race and exponential backoff."""
import asyncio
import errno
import logging
import socket
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from travelrelay.core.cache import DEFAULT_TTL_S, CacheStore
from travelrelay.core.errors import (
    ErrorClass,
    TerminalUpstreamError,
    TransientUpstreamError,
    UpstreamError,
    UpstreamTimeoutError,
)
from travelrelay.core.logging import structured_logger
from travelrelay.metrics.prometheus import (
    attempts_total,
    cache_hits_total,
    cache_misses_total,
    call_latency_ms,
    calls_total,
    retries_total,
)

logger = logging.getLogger(__name__)

# Network-level condition codes that are worth another attempt
TRANSIENT_NETWORK_CODES = frozenset({"ECONNRESET", "ENOTFOUND", "ETIMEDOUT"})

# httpx.ConnectError messages for the same conditions when no cause is attached
TRANSIENT_CONNECT_MESSAGES = (
    "connection reset",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
)

Thunk = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry and deadline policy for one call site.

    Attributes:
        max_retries: Additional attempts allowed after the first one
        initial_delay_s: Backoff before the first retry; doubles on each retry
        timeout_s: Deadline for a single attempt
        max_delay_s: Optional cap on a single backoff delay
    """

    max_retries: int = 2
    initial_delay_s: float = 1.0
    timeout_s: float = 25.0
    max_delay_s: Optional[float] = None

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay_s < 0:
            raise ValueError(f"initial_delay_s must be >= 0, got {self.initial_delay_s}")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")

    def get_delay(self, attempt: int) -> float:
        """Backoff to wait after the given failed attempt (0-based)."""
        delay = self.initial_delay_s * (2 ** attempt)
        if self.max_delay_s is not None:
            delay = min(delay, self.max_delay_s)
        return delay


class CallState(str, Enum):
    """Transitions of a single execute() call."""
    PENDING = "PENDING"
    CACHE_HIT = "CACHE_HIT"
    ATTEMPTING = "ATTEMPTING"
    SUCCEEDED = "SUCCEEDED"
    TIMED_OUT = "TIMED_OUT"
    TRANSIENT_FAILED = "TRANSIENT_FAILED"
    BACKOFF = "BACKOFF"
    TERMINAL_FAILED = "TERMINAL_FAILED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"


@dataclass
class CallAttempt:
    """One invocation of the thunk. Used for logging only."""

    operation: str
    attempt: int
    started_at: float


def _status_code(error: BaseException) -> Optional[int]:
    """Extract an HTTP-like status code from an error, if it carries one."""
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def _network_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code
    err_no = getattr(error, "errno", None)
    if isinstance(err_no, int):
        return errno.errorcode.get(err_no)
    return None


def classify_error(error: BaseException) -> ErrorClass:
    """Classify a failure as rate limit, timeout, network or terminal.

    Pure function of the error value: status code, exception type, message
    and network condition code.
    """
    if isinstance(error, UpstreamError):
        return error.error_class

    if _status_code(error) == 429:
        return ErrorClass.RATE_LIMIT

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return ErrorClass.TIMEOUT
    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return ErrorClass.TIMEOUT

    if _is_transient_network(error):
        return ErrorClass.NETWORK

    return ErrorClass.TERMINAL


def _is_transient_network(error: BaseException) -> bool:
    # Connection reset or DNS failure, on the error itself or anywhere on its cause chain.
    # A refused connection is not transient.
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen and len(seen) < 8:
        seen.add(id(current))
        if isinstance(current, (ConnectionResetError, socket.gaierror, httpx.ReadError)):
            return True
        if _network_code(current) in TRANSIENT_NETWORK_CODES:
            return True
        if isinstance(current, httpx.ConnectError):
            message = str(current).lower()
            if any(fragment in message for fragment in TRANSIENT_CONNECT_MESSAGES):
                return True
        current = current.__cause__
    return False


def _discard_result(task: asyncio.Future) -> None:
    # Retrieve the outcome of an abandoned attempt so it is never reported as unhandled.
    if not task.cancelled():
        task.exception()


def _abandon(task: asyncio.Future) -> None:
    task.cancel()
    task.add_done_callback(_discard_result)


class ResilientExecutor:
    """Runs upstream calls with caching, a per-attempt deadline and bounded retries."""

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        default_policy: Optional[RetryPolicy] = None,
        default_ttl_s: float = DEFAULT_TTL_S,
        classifier: Callable[[BaseException], ErrorClass] = classify_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            cache: Shared cache store (required for calls that pass a cache key)
            default_policy: Policy used when execute() gets none
            default_ttl_s: TTL used when a cache key is given without a TTL
            classifier: Maps a failure to its ErrorClass
            sleep: Coroutine used for backoff waits
        """
        self.cache = cache
        self.default_policy = default_policy or RetryPolicy()
        self.default_ttl_s = default_ttl_s
        self.classifier = classifier
        self._sleep = sleep

    async def execute(
        self,
        operation: str,
        thunk: Thunk,
        policy: Optional[RetryPolicy] = None,
        cache_key: Optional[str] = None,
        ttl_s: Optional[float] = None,
    ) -> Any:
        """
        Execute thunk with cache short-circuit, deadline and retries.

        Args:
            operation: Unique operation name, used in logs, metrics and errors
            thunk: Zero-argument callable returning an awaitable
            policy: Retry policy (defaults to the executor's default policy)
            cache_key: Optional cache key; enables cache lookup and population
            ttl_s: Cache TTL in seconds (defaults to default_ttl_s)

        Returns:
            Cached value on a hit, otherwise the thunk's result

        Raises:
            UpstreamTimeoutError: Last attempt hit the deadline
            TransientUpstreamError: Transient failures outlasted max_retries
            TerminalUpstreamError: Non-transient failure (never retried)
        """
        policy = policy or self.default_policy
        start_time = time.monotonic()

        if cache_key is not None:
            if self.cache is None:
                raise ValueError(f"{operation}: cache_key given but executor has no cache store")
            if ttl_s is None:
                ttl_s = self.default_ttl_s
            if ttl_s <= 0:
                raise ValueError(f"{operation}: ttl_s must be > 0, got {ttl_s}")
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for {cache_key}")
                cache_hits_total.labels(operation=operation).inc()
                self._record(operation, "cache_hit", CallState.CACHE_HIT, 0, start_time, cache_key=cache_key)
                return cached
            logger.debug(f"Cache miss for {cache_key}, calling upstream")
            cache_misses_total.labels(operation=operation).inc()

        last_error: Optional[Exception] = None
        error_class = ErrorClass.TERMINAL
        state = CallState.PENDING
        attempts_made = 0

        for attempt in range(policy.max_retries + 1):
            call = CallAttempt(operation=operation, attempt=attempt, started_at=time.monotonic())
            attempts_total.labels(operation=operation).inc()
            attempts_made += 1
            state = CallState.ATTEMPTING
            try:
                value = await self._attempt(call, thunk, policy.timeout_s)
            except Exception as e:
                last_error = e
                error_class = self.classifier(e)

                if not error_class.is_transient:
                    state = CallState.TERMINAL_FAILED
                    break
                if attempt >= policy.max_retries:
                    state = CallState.RETRIES_EXHAUSTED
                    break

                state = CallState.TIMED_OUT if error_class is ErrorClass.TIMEOUT else CallState.TRANSIENT_FAILED
                delay = policy.get_delay(attempt)
                logger.warning(
                    f"{operation} {state.value} ({error_class.value}: {e}), retrying after {delay:.3f}s. "
                    f"Retries left: {policy.max_retries - attempt}"
                )
                retries_total.labels(operation=operation, error_class=error_class.value).inc()
                state = CallState.BACKOFF
                await self._sleep(delay)
                continue

            if cache_key is not None:
                self.cache.put(cache_key, value, ttl_s)
            self._record(
                operation, "success", CallState.SUCCEEDED, attempts_made, start_time, cache_key=cache_key
            )
            return value

        failure = self._final_error(operation, last_error, error_class, attempts_made)
        outcome = "timeout" if error_class is ErrorClass.TIMEOUT else "error"
        self._record(
            operation,
            outcome,
            state,
            failure.attempts,
            start_time,
            cache_key=cache_key,
            error_class=error_class.value,
            upstream_status=failure.status_code,
            error_message=failure.message,
            level="ERROR",
        )
        if failure is last_error:
            raise failure
        raise failure from last_error

    async def _attempt(self, call: CallAttempt, thunk: Thunk, timeout_s: float) -> Any:
        """Race one thunk invocation against the deadline."""
        task = asyncio.ensure_future(thunk())
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_s)
        except asyncio.CancelledError:
            _abandon(task)
            raise
        if not done:
            # Cancellation is cooperative; an attempt that ignores it is left detached.
            _abandon(task)
            elapsed_ms = int((time.monotonic() - call.started_at) * 1000)
            logger.warning(f"Timeout in {call.operation} attempt {call.attempt + 1} after {elapsed_ms}ms")
            raise UpstreamTimeoutError(call.operation, timeout_s)
        return task.result()

    def _final_error(
        self,
        operation: str,
        error: Exception,
        error_class: ErrorClass,
        attempts: int,
    ) -> UpstreamError:
        """Wrap the last failure into the error taxonomy."""
        if isinstance(error, UpstreamTimeoutError):
            error.attempts = attempts
            return error
        error_type = TransientUpstreamError if error_class.is_transient else TerminalUpstreamError
        return error_type(
            str(error) or type(error).__name__,
            operation=operation,
            error_class=error_class,
            status_code=_status_code(error),
            attempts=attempts,
        )

    def _record(
        self,
        operation: str,
        outcome: str,
        state: CallState,
        attempts: int,
        start_time: float,
        **fields: Any,
    ) -> None:
        latency_ms = int((time.monotonic() - start_time) * 1000)
        calls_total.labels(operation=operation, outcome=outcome).inc()
        call_latency_ms.labels(operation=operation, outcome=outcome).observe(latency_ms)
        structured_logger.log_call(
            operation=operation,
            outcome=outcome,
            state=state.value,
            attempts=attempts,
            latency_ms=latency_ms,
            cache_hit=state is CallState.CACHE_HIT,
            **fields,
        )
