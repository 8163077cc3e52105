"""TravelRelay Core - cache store and resilient call executor."""

from travelrelay.core.cache import CacheStore, make_cache_key
from travelrelay.core.errors import (
    ErrorClass,
    TerminalUpstreamError,
    TransientUpstreamError,
    UpstreamError,
    UpstreamTimeoutError,
)
from travelrelay.core.retry import ResilientExecutor, RetryPolicy, classify_error

__all__ = [
    "CacheStore",
    "make_cache_key",
    "ErrorClass",
    "UpstreamError",
    "TransientUpstreamError",
    "UpstreamTimeoutError",
    "TerminalUpstreamError",
    "ResilientExecutor",
    "RetryPolicy",
    "classify_error",
]
