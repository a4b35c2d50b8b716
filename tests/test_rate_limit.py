"""Tests for the global upstream rate limiter."""

from __future__ import annotations

import asyncio

import pytest

from app.services.rate_limit import RateLimiter


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class VirtualTime:
    """Clock and sleep pair that advance instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.mark.anyio("asyncio")
async def test_concurrent_callers_are_spaced_by_the_minimum_interval() -> None:
    time = VirtualTime()
    limiter = RateLimiter(0.15, clock=time.clock, sleep=time.sleep)
    starts: list[float] = []

    async def call() -> None:
        await limiter.wait()
        starts.append(time.now)

    await asyncio.gather(call(), call(), call())

    assert starts == pytest.approx([0.0, 0.15, 0.30])
    assert time.sleeps == pytest.approx([0.15, 0.15])


@pytest.mark.anyio("asyncio")
async def test_no_delay_once_interval_has_elapsed() -> None:
    time = VirtualTime()
    limiter = RateLimiter(0.15, clock=time.clock, sleep=time.sleep)

    await limiter.wait()
    time.now += 1.0
    await limiter.wait()

    assert time.sleeps == []


@pytest.mark.anyio("asyncio")
async def test_real_clock_spacing() -> None:
    """With the real clock the third call should start at least 300ms after the first."""

    loop = asyncio.get_running_loop()
    limiter = RateLimiter(0.15)
    starts: list[float] = []

    async def call() -> None:
        await limiter.wait()
        starts.append(loop.time())

    await asyncio.gather(call(), call(), call())

    assert starts[1] - starts[0] >= 0.145
    assert starts[2] - starts[0] >= 0.295


def test_zero_interval_disables_spacing() -> None:
    assert RateLimiter(-5).min_interval == 0.0
