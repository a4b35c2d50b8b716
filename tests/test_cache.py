"""Tests for the coalescing TTL cache."""

from __future__ import annotations

import asyncio

import pytest

from app.services.cache import TTLCache


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.anyio("asyncio")
async def test_concurrent_requests_share_one_fetch() -> None:
    """Simultaneous callers for the same key should trigger a single upstream call."""

    cache = TTLCache()
    calls = 0
    release = asyncio.Event()

    async def fetch() -> str:
        nonlocal calls
        calls += 1
        await release.wait()
        return "payload"

    waiters = [
        asyncio.create_task(cache.get_or_fetch("trending:{}", 60, fetch)) for _ in range(5)
    ]
    await asyncio.sleep(0)
    assert cache.in_flight_count == 1

    release.set()
    results = await asyncio.gather(*waiters)

    assert results == ["payload"] * 5
    assert calls == 1
    assert cache.in_flight_count == 0
    assert len(cache) == 1


@pytest.mark.anyio("asyncio")
async def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    calls = 0

    async def fetch() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await cache.get_or_fetch("k", 10, fetch) == 1
    clock.now += 9
    assert await cache.get_or_fetch("k", 10, fetch) == 1
    clock.now += 2
    assert cache.peek("k") is None
    assert await cache.get_or_fetch("k", 10, fetch) == 2


@pytest.mark.anyio("asyncio")
async def test_entry_expires_exactly_at_ttl() -> None:
    """The first request at exactly ``start + ttl`` triggers one refetch."""

    clock = FakeClock()
    cache = TTLCache(clock=clock)
    calls = 0

    async def fetch() -> int:
        nonlocal calls
        calls += 1
        return calls

    start = clock.now
    assert await cache.get_or_fetch("k", 10, fetch) == 1
    clock.now = start + 9.999
    assert await cache.get_or_fetch("k", 10, fetch) == 1

    clock.now = start + 10
    assert await cache.get_or_fetch("k", 10, fetch) == 2
    assert await cache.get_or_fetch("k", 10, fetch) == 2
    assert calls == 2


@pytest.mark.anyio("asyncio")
async def test_failures_propagate_to_every_waiter_and_are_not_cached() -> None:
    cache = TTLCache()
    release = asyncio.Event()
    attempts = 0

    async def failing() -> str:
        nonlocal attempts
        attempts += 1
        await release.wait()
        raise RuntimeError("upstream down")

    waiters = [
        asyncio.create_task(cache.get_or_fetch("search:{}", 60, failing)) for _ in range(3)
    ]
    await asyncio.sleep(0)
    release.set()
    outcomes = await asyncio.gather(*waiters, return_exceptions=True)

    assert attempts == 1
    assert all(isinstance(outcome, RuntimeError) for outcome in outcomes)
    assert len(cache) == 0
    assert cache.in_flight_count == 0

    async def succeeding() -> str:
        return "recovered"

    assert await cache.get_or_fetch("search:{}", 60, succeeding) == "recovered"


@pytest.mark.anyio("asyncio")
async def test_cancelled_waiter_does_not_cancel_shared_fetch() -> None:
    cache = TTLCache()
    release = asyncio.Event()

    async def fetch() -> str:
        await release.wait()
        return "done"

    abandoned = asyncio.create_task(cache.get_or_fetch("k", 60, fetch))
    survivor = asyncio.create_task(cache.get_or_fetch("k", 60, fetch))
    await asyncio.sleep(0)
    abandoned.cancel()
    release.set()

    assert await survivor == "done"
    assert cache.peek("k") == "done"


@pytest.mark.anyio("asyncio")
async def test_reset_clears_entries_and_detaches_pending_fetches() -> None:
    cache = TTLCache()
    release = asyncio.Event()

    async def slow() -> str:
        await release.wait()
        return "stale"

    pending = asyncio.create_task(cache.get_or_fetch("k", 60, slow))
    await asyncio.sleep(0)
    await cache.reset()
    assert cache.in_flight_count == 0

    release.set()
    assert await pending == "stale"
    assert cache.peek("k") is None

    async def fresh() -> str:
        return "fresh"

    assert await cache.get_or_fetch("k", 60, fresh) == "fresh"
