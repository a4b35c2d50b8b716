"""Ordered fallback tiers: live TMDB, persisted cache, static seed data."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from ..errors import TierFailure

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT")
ResultT = TypeVar("ResultT")


@dataclass(frozen=True, slots=True)
class Tier(Generic[RequestT, ResultT]):
    """A named data source that either returns a result or raises ``TierFailure``."""

    name: str
    resolve: Callable[[RequestT], Awaitable[ResultT]]


@dataclass(frozen=True, slots=True)
class Resolution(Generic[ResultT]):
    value: ResultT
    tier: str
    failures: tuple[TierFailure, ...] = ()


class FallbackChain(Generic[RequestT, ResultT]):
    """Run tiers in order and return the first success.

    Tier failures are logged and never raised; the final tier is expected to be
    infallible (the seed catalogue). If every tier fails the last failure is
    raised so the caller can see a broken chain configuration.
    """

    def __init__(self, operation: str, tiers: Sequence[Tier[RequestT, ResultT]]):
        if not tiers:
            raise ValueError("A fallback chain needs at least one tier")
        self._operation = operation
        self._tiers = tuple(tiers)

    @property
    def tier_names(self) -> tuple[str, ...]:
        return tuple(tier.name for tier in self._tiers)

    async def resolve(self, request: RequestT) -> Resolution[ResultT]:
        failures: list[TierFailure] = []
        for tier in self._tiers:
            try:
                value = await tier.resolve(request)
            except TierFailure as failure:
                failures.append(failure)
                logger.warning(
                    "%s tier %s unavailable: %s",
                    self._operation,
                    tier.name,
                    failure.reason,
                )
                continue
            if failures:
                logger.info(
                    "%s served from %s tier after %d failure(s)",
                    self._operation,
                    tier.name,
                    len(failures),
                )
            return Resolution(value=value, tier=tier.name, failures=tuple(failures))
        raise failures[-1]
