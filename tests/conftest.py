"""Pytest configuration and fixtures."""
import pytest

from travelrelay.core.cache import CacheStore
from travelrelay.core.retry import ResilientExecutor, RetryPolicy


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Cache store driven by the fake clock, background sweep disabled."""
    return CacheStore(check_period_s=0, clock=clock)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def executor(cache, sleeps):
    """Executor with recorded (instant) backoff."""
    return ResilientExecutor(
        cache=cache,
        default_policy=RetryPolicy(max_retries=2, initial_delay_s=1.0, timeout_s=1.0),
        sleep=sleeps,
    )
