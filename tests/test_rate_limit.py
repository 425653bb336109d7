"""Tests for the rate limiter."""

import asyncio

import pytest

from deal_monitor.core import RateLimiter


class FakeClock:
    """Clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_first_call_does_not_wait() -> None:
    """Test the first acquisition is immediate."""
    clock = FakeClock()
    limiter = RateLimiter(0.5, clock=clock, sleep=clock.sleep)

    await limiter.acquire()

    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_successive_calls_are_spaced() -> None:
    """Test back-to-back acquisitions wait out the interval."""
    clock = FakeClock()
    limiter = RateLimiter(0.5, clock=clock, sleep=clock.sleep)

    await limiter.acquire()
    clock.now += 0.2
    await limiter.acquire()
    clock.now += 1.0
    await limiter.acquire()

    assert clock.sleeps == [pytest.approx(0.3)]


@pytest.mark.asyncio
async def test_concurrent_callers_are_spaced() -> None:
    """Test a fan-out still respects the interval."""
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)

    async def call() -> None:
        async with limiter:
            pass

    await asyncio.gather(*(call() for _ in range(3)))

    assert clock.sleeps == [pytest.approx(1.0), pytest.approx(1.0)]


def test_negative_interval_rejected() -> None:
    """Test negative intervals are invalid."""
    with pytest.raises(ValueError):
        RateLimiter(-1)
