"""Tests for blending liked titles into recommendations."""

from __future__ import annotations

import asyncio

from app.models import MediaItem, MediaPatch, MediaRecord
from app.services.background import BackgroundWriter
from app.services.personalization import PersonalizationEngine


def _liked(item_id: int, title: str, **fields) -> MediaRecord:
    fields.setdefault("media_type", "movie")
    return MediaRecord(kind="liked", user_id="u", item_id=item_id, title=title, **fields)


def _engine(base: list[MediaItem], signals: list[MediaRecord]):
    writer = BackgroundWriter()
    persisted: list[tuple[int, dict]] = []
    requested: list[str] = []

    async def base_source(category):
        requested.append(category)
        return base

    async def signal_source(user_id, limit):
        return signals[:limit]

    async def persist(record: MediaRecord, patch: MediaPatch) -> None:
        persisted.append((record.item_id, patch.values()))

    engine = PersonalizationEngine(
        base_source=base_source,
        signal_source=signal_source,
        writer=writer,
        persist=persist,
    )
    return engine, writer, persisted, requested


BASE = [
    MediaItem(id=300, title="Heat", poster_path="/heat.jpg"),
    MediaItem(id=100, title="Dune (base)", poster_path="/base.jpg"),
    MediaItem(id=400, title="Alien"),
    MediaItem(id=300, title="Heat duplicate"),
]


def test_liked_titles_lead_without_duplicates() -> None:
    async def runner() -> None:
        signals = [
            _liked(100, "Dune", poster_path="/mine.jpg"),
            _liked(200, ""),
            _liked(300, "#300"),
        ]
        engine, writer, persisted, _ = _engine(BASE, signals)

        merged = await engine.personalize("u")
        await writer.drain()

        assert [item.id for item in merged] == [100, 300, 400]
        # Stored values win over the recommendation payload.
        assert merged[0].title == "Dune"
        assert merged[0].poster_path == "/mine.jpg"
        # Placeholder titles are resolved from the matching recommendation.
        assert merged[1].title == "Heat"
        assert persisted == [(300, {"title": "Heat", "poster_path": "/heat.jpg"})]

    asyncio.run(runner())


def test_unresolvable_signal_is_dropped() -> None:
    engine, _, _, _ = _engine([], [])

    merged = engine.merge([_liked(999, "Unknown")], [MediaItem(id=1, title="Inception")])

    assert [item.id for item in merged] == [1]


def test_category_filters_signals() -> None:
    async def runner() -> None:
        signals = [
            _liked(1, "Inception", poster_path="/i.jpg"),
            _liked(3, "Breaking Bad", media_type="tv", poster_path="/bb.jpg"),
        ]
        base = [MediaItem(id=4, media_type="tv", title="The Bear")]
        engine, _, _, requested = _engine(base, signals)

        merged = await engine.personalize("u", "tv")

        assert requested == ["tv"]
        assert [item.id for item in merged] == [3, 4]
        assert merged[0].media_type == "tv"

    asyncio.run(runner())
