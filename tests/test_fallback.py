"""Tests for ordered tier fallback."""

from __future__ import annotations

import asyncio

import pytest

from app.errors import TierFailure
from app.services.fallback import FallbackChain, Tier


def _failing(name: str):
    async def resolve(request: str) -> str:
        raise TierFailure(name, f"{name} unavailable")

    return resolve


def _succeeding(value: str):
    async def resolve(request: str) -> str:
        return f"{value}:{request}"

    return resolve


def test_first_successful_tier_wins() -> None:
    chain = FallbackChain(
        "search",
        [Tier("live", _succeeding("live")), Tier("seed", _succeeding("seed"))],
    )

    resolution = asyncio.run(chain.resolve("q"))

    assert resolution.value == "live:q"
    assert resolution.tier == "live"
    assert resolution.failures == ()


def test_failures_fall_through_in_order(caplog: pytest.LogCaptureFixture) -> None:
    chain = FallbackChain(
        "search",
        [
            Tier("live", _failing("live")),
            Tier("cache", _failing("cache")),
            Tier("seed", _succeeding("seed")),
        ],
    )

    with caplog.at_level("WARNING"):
        resolution = asyncio.run(chain.resolve("q"))

    assert resolution.tier == "seed"
    assert [failure.tier for failure in resolution.failures] == ["live", "cache"]
    assert "search tier live unavailable" in caplog.text
    assert chain.tier_names == ("live", "cache", "seed")


def test_unexpected_errors_are_not_swallowed() -> None:
    async def broken(request: str) -> str:
        raise KeyError("bug")

    chain = FallbackChain("trending", [Tier("live", broken), Tier("seed", _succeeding("seed"))])

    with pytest.raises(KeyError):
        asyncio.run(chain.resolve("q"))


def test_all_tiers_failing_raises_last_failure() -> None:
    chain = FallbackChain("trending", [Tier("live", _failing("live")), Tier("seed", _failing("seed"))])

    with pytest.raises(TierFailure) as excinfo:
        asyncio.run(chain.resolve("q"))

    assert excinfo.value.tier == "seed"


def test_chain_requires_tiers() -> None:
    with pytest.raises(ValueError):
        FallbackChain("empty", [])
