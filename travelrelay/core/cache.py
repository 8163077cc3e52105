"""In-process TTL cache for upstream responses."""
import asyncio
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from travelrelay.metrics.prometheus import cache_entries

logger = logging.getLogger(__name__)

# Default TTL for general responses (10 minutes)
DEFAULT_TTL_S = 600
# TTL for near-static reference data such as airport lookups (24 hours)
REFERENCE_DATA_TTL_S = 86400
# Interval of the background sweep that reclaims expired entries
DEFAULT_CHECK_PERIOD_S = 120


@dataclass
class CacheEntry:
    """Cached value with its absolute expiry time."""

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def make_cache_key(operation: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Generate cache key from an operation name and its parameters.

    Parameters with a ``None`` value are dropped so that an omitted optional
    parameter and an explicit ``None`` map to the same key.

    Args:
        operation: Logical operation name (e.g. "search_airports")
        params: Flat map of request parameters
    """
    significant = {k: v for k, v in (params or {}).items() if v is not None}
    key_str = json.dumps(significant, sort_keys=True, default=str)
    key_hash = hashlib.sha256(key_str.encode()).hexdigest()[:32]
    return f"{operation}:{key_hash}"


class CacheStore:
    """Process-wide key/value store with per-entry TTL.

    Expiry is checked lazily on ``get``; a periodic sweep only reclaims memory.
    Values are stored by reference, so callers must not mutate what they get back.

    Note: Uses threading.Lock so the store can be shared with worker threads
    as well as concurrent asyncio tasks.
    """

    def __init__(
        self,
        check_period_s: float = DEFAULT_CHECK_PERIOD_S,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            check_period_s: Seconds between background sweeps (0 disables them)
            max_entries: Optional cap on stored entries (None = unbounded)
            clock: Monotonic time source in seconds
        """
        if max_entries is not None and max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.check_period_s = check_period_s
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def put(self, key: str, value: Any, ttl_s: float = DEFAULT_TTL_S) -> None:
        """Store value under key for ttl_s seconds, replacing any existing entry.

        Args:
            key: Cache key
            value: Value to store (kept by reference)
            ttl_s: Time to live in seconds
        """
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got {ttl_s}")
        now = self._clock()
        with self._lock:
            if (
                self.max_entries is not None
                and key not in self._entries
                and len(self._entries) >= self.max_entries
            ):
                self._make_room(now)
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=now + ttl_s)

    def delete(self, key: str) -> bool:
        """Remove key; returns True if an entry was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove every expired entry.

        Expiry is evaluated under the lock for each key, so an entry refreshed
        by a concurrent ``put`` is never removed.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}

    def _make_room(self, now: float) -> None:
        # Caller holds the lock.
        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            soonest = min(self._entries.values(), key=lambda e: e.expires_at)
            del self._entries[soonest.key]
            logger.debug(f"Cache full ({self.max_entries}), evicted {soonest.key}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(now)

    async def start(self) -> None:
        """Start the periodic background sweep on the running event loop."""
        if self.check_period_s <= 0 or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Cache sweep started (every {self.check_period_s}s)")

    async def close(self) -> None:
        """Stop the background sweep and drop all entries."""
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period_s)
            try:
                self.sweep()
                cache_entries.set(len(self))
            except Exception:
                # A failed pass is logged and the next period sweeps again.
                logger.exception("Cache sweep failed")

    async def __aenter__(self) -> "CacheStore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
