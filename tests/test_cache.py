"""Tests for core/cache.py."""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from travelrelay.core.cache import CacheStore, make_cache_key


def test_cache_get_put(cache):
    """Test basic cache get/put operations."""
    value = {"data": [{"iataCode": "JFK"}]}
    cache.put("airports:jfk", value, ttl_s=60)

    assert cache.get("airports:jfk") is value  # stored by reference
    assert "airports:jfk" in cache
    assert len(cache) == 1


def test_cache_miss_returns_none(cache):
    assert cache.get("missing") is None
    assert "missing" not in cache
    assert cache.stats()["misses"] == 1


def test_cache_entry_expires_at_ttl(cache, clock):
    """Entry is served strictly before expires_at and never at or after it."""
    cache.put("k", "v", ttl_s=10)

    clock.advance(9.999)
    assert cache.get("k") == "v"

    clock.advance(0.001)
    assert cache.get("k") is None
    assert len(cache) == 0  # lazily removed on lookup


def test_cache_put_overwrites(cache, clock):
    """Last writer wins and the TTL restarts."""
    cache.put("k", "old", ttl_s=10)
    clock.advance(8)
    cache.put("k", "new", ttl_s=10)
    clock.advance(8)

    assert cache.get("k") == "new"


def test_cache_invalid_ttl(cache):
    with pytest.raises(ValueError):
        cache.put("k", "v", ttl_s=0)


def test_cache_delete_and_clear(cache):
    cache.put("a", 1, ttl_s=60)
    cache.put("b", 2, ttl_s=60)

    assert cache.delete("a") is True
    assert cache.delete("a") is False
    assert cache.get("a") is None

    cache.clear()
    assert len(cache) == 0


def test_cache_sweep_removes_only_expired(cache, clock):
    cache.put("short", 1, ttl_s=5)
    cache.put("long", 2, ttl_s=500)
    clock.advance(10)

    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("long") == 2


def test_cache_sweep_keeps_refreshed_entry(cache, clock):
    """A key re-put after expiring survives the next sweep."""
    cache.put("k", "v1", ttl_s=5)
    clock.advance(10)
    cache.put("k", "v2", ttl_s=5)

    assert cache.sweep() == 0
    assert cache.get("k") == "v2"


def test_cache_max_entries_evicts_soonest_expiring(clock):
    cache = CacheStore(check_period_s=0, max_entries=2, clock=clock)
    cache.put("a", 1, ttl_s=10)
    cache.put("b", 2, ttl_s=100)
    cache.put("c", 3, ttl_s=50)

    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_cache_max_entries_prefers_dropping_expired(clock):
    cache = CacheStore(check_period_s=0, max_entries=2, clock=clock)
    cache.put("expired", 1, ttl_s=1)
    cache.put("fresh", 2, ttl_s=1000)
    clock.advance(5)
    cache.put("new", 3, ttl_s=10)

    assert cache.get("fresh") == 2
    assert cache.get("new") == 3


def test_cache_overwrite_at_capacity_does_not_evict(clock):
    cache = CacheStore(check_period_s=0, max_entries=2, clock=clock)
    cache.put("a", 1, ttl_s=10)
    cache.put("b", 2, ttl_s=100)
    cache.put("a", 10, ttl_s=10)

    assert cache.get("a") == 10
    assert cache.get("b") == 2


def test_cache_invalid_max_entries():
    with pytest.raises(ValueError):
        CacheStore(max_entries=0)


def test_cache_stats(cache):
    cache.put("k", "v", ttl_s=60)
    cache.get("k")
    cache.get("k")
    cache.get("other")

    assert cache.stats() == {"size": 1, "hits": 2, "misses": 1}


def test_cache_concurrent_put_same_key(cache):
    """Concurrent writers on one key: no errors, one of the values wins."""
    def put_value(i):
        cache.put("shared", {"writer": i}, ttl_s=60)

    with ThreadPoolExecutor(max_workers=10) as pool:
        for future in [pool.submit(put_value, i) for i in range(50)]:
            future.result()

    cached = cache.get("shared")
    assert cached is not None
    assert 0 <= cached["writer"] < 50
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_cache_background_sweep(clock):
    cache = CacheStore(check_period_s=0.01, clock=clock)
    cache.put("k", "v", ttl_s=1)
    clock.advance(5)

    async with cache:
        await asyncio.sleep(0.05)
        # Swept without anyone calling get()
        assert len(cache) == 0

    assert cache._sweep_task is None


@pytest.mark.asyncio
async def test_cache_background_sweep_survives_failed_pass(clock, monkeypatch, caplog):
    cache = CacheStore(check_period_s=0.01, clock=clock)
    real_sweep = cache.sweep
    calls = []

    def flaky_sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("sweep exploded")
        return real_sweep()

    monkeypatch.setattr(cache, "sweep", flaky_sweep)
    cache.put("k", "v", ttl_s=1)
    clock.advance(5)

    with caplog.at_level(logging.ERROR, logger="travelrelay.core.cache"):
        await cache.start()
        await asyncio.sleep(0.1)

        assert cache._sweep_task is not None
        assert not cache._sweep_task.done()
        assert len(calls) >= 2
        # Later passes still expire entries
        assert "k" not in cache._entries

        await cache.close()

    assert cache._sweep_task is None
    assert "Cache sweep failed" in caplog.text


@pytest.mark.asyncio
async def test_cache_start_disabled_when_period_zero(cache):
    await cache.start()
    assert cache._sweep_task is None
    await cache.close()


def test_make_cache_key_is_order_independent():
    key1 = make_cache_key("search_airports", {"keyword": "PAR", "subType": "CITY"})
    key2 = make_cache_key("search_airports", {"subType": "CITY", "keyword": "PAR"})
    assert key1 == key2
    assert key1.startswith("search_airports:")


def test_make_cache_key_drops_none_params():
    assert make_cache_key("op", {"a": 1, "b": None}) == make_cache_key("op", {"a": 1})


def test_make_cache_key_distinguishes_operations_and_params():
    assert make_cache_key("op1", {"a": 1}) != make_cache_key("op2", {"a": 1})
    assert make_cache_key("op", {"a": 1}) != make_cache_key("op", {"a": 2})
