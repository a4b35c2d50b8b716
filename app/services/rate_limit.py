"""Global spacing of outbound TMDB requests."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Enforce a minimum interval between consecutive upstream calls.

    One clock is shared by every caller; waiters are released in the order they
    acquired the lock.
    """

    def __init__(
        self,
        min_interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._min_interval = max(0.0, float(min_interval_seconds))
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_call: float | None = None

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def wait(self) -> None:
        """Suspend until the caller may issue its request, then record it."""

        async with self._lock:
            if self._last_call is not None and self._min_interval > 0:
                elapsed = self._clock() - self._last_call
                remaining = self._min_interval - elapsed
                if remaining > 0:
                    logger.debug("Rate limiter delaying upstream call by %.3fs", remaining)
                    await self._sleep(remaining)
            self._last_call = self._clock()
