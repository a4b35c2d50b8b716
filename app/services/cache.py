"""In-process TTL cache that coalesces concurrent fetches per key."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float


@dataclass(slots=True)
class InFlightHandle:
    """A pending fetch shared by every caller asking for ``key``."""

    key: str
    task: asyncio.Task[Any]
    generation: int


class TTLCache:
    """Memoise upstream responses and share pending fetches.

    All reads and writes of the entry and in-flight maps happen under one lock,
    so the check for an existing handle and the creation of a new one cannot
    interleave with another request for the same key.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, InFlightHandle] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def peek(self, key: str) -> Any | None:
        """Return the live value for ``key`` without fetching."""

        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    async def get_or_fetch(
        self, key: str, ttl: float, fetch: Callable[[], Awaitable[T]]
    ) -> T:
        """Return the cached value for ``key`` or run ``fetch`` exactly once.

        Failures propagate to every waiter and are never cached.
        """

        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.expires_at > self._clock():
                    logger.debug("Cache hit for %s", key)
                    return entry.value
                del self._entries[key]

            handle = self._in_flight.get(key)
            if handle is None:
                task = asyncio.ensure_future(self._run(key, ttl, fetch))
                task.add_done_callback(_consume_exception)
                handle = InFlightHandle(key=key, task=task, generation=self._generation)
                self._in_flight[key] = handle
            else:
                logger.debug("Joining in-flight fetch for %s", key)

        # Shielded so an abandoned caller does not cancel the shared fetch.
        return await asyncio.shield(handle.task)

    async def _run(self, key: str, ttl: float, fetch: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await fetch()
        except BaseException:
            async with self._lock:
                self._release(key)
            raise

        async with self._lock:
            handle = self._release(key)
            if handle is not None and handle.generation == self._generation:
                self._entries[key] = CacheEntry(
                    key=key,
                    value=value,
                    expires_at=self._clock() + max(0.0, float(ttl)),
                )
        return value

    def _release(self, key: str) -> InFlightHandle | None:
        handle = self._in_flight.get(key)
        if handle is not None and handle.task is asyncio.current_task():
            del self._in_flight[key]
            return handle
        return None

    async def reset(self) -> None:
        """Drop every entry and detach pending fetches from the cache."""

        async with self._lock:
            self._entries.clear()
            self._in_flight.clear()
            self._generation += 1


def _consume_exception(task: asyncio.Task[Any]) -> None:
    if not task.cancelled():
        task.exception()
