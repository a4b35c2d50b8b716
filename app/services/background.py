"""Fire-and-forget execution of persistence writes."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class BackgroundWriter:
    """Run detached coroutines whose failures are logged, never raised.

    The response that scheduled a write does not wait for it. Tasks are kept
    referenced until they finish so they are not garbage collected mid-flight,
    and :meth:`drain` lets shutdown (and tests) wait for the backlog.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, label: str, job: Callable[[], Awaitable[Any]]) -> asyncio.Task[Any]:
        async def _runner() -> None:
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.failures += 1
                logger.warning("Background write %s failed: %s", label, exc)

        task = asyncio.create_task(_runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every write submitted so far, including ones they submit."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding writes."""

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
