"""Tests for best-effort metadata enrichment of stored records."""

from __future__ import annotations

import asyncio

from app.errors import UpstreamError
from app.models import MediaItem, MediaPatch, MediaRecord
from app.services.background import BackgroundWriter
from app.services.enrichment import EnrichmentPipeline, backfill_patch


class FakeSource:
    def __init__(self) -> None:
        self.title_lookups: list[str] = []
        self.detail_lookups: list[int] = []
        self.by_title: dict[str, MediaItem | Exception] = {}
        self.by_id: dict[int, MediaItem] = {}

    async def find_by_title(self, title, *, media_type, year=None):
        self.title_lookups.append(title)
        outcome = self.by_title.get(title)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def details(self, media_type, item_id):
        self.detail_lookups.append(item_id)
        item = self.by_id.get(item_id)
        if item is None:
            raise UpstreamError(f"no details for {item_id}", status_code=404)
        return item


def _record(item_id: int, title: str, **fields) -> MediaRecord:
    return MediaRecord(kind="watchlist", user_id="u", item_id=item_id, title=title, **fields)


def _pipeline(source):
    writer = BackgroundWriter()
    persisted: list[tuple[int, dict]] = []

    async def persist(record: MediaRecord, patch: MediaPatch) -> None:
        persisted.append((record.item_id, patch.values()))

    return EnrichmentPipeline(source, writer, persist), writer, persisted


def test_complete_records_are_not_looked_up() -> None:
    async def runner() -> None:
        source = FakeSource()
        pipeline, writer, persisted = _pipeline(source)
        complete = _record(1, "Inception", media_type="movie", poster_path="/inception.jpg")

        result = await pipeline.enrich([complete])
        await writer.drain()

        assert result == [complete]
        assert source.title_lookups == []
        assert source.detail_lookups == []
        assert persisted == []

    asyncio.run(runner())


def test_failed_lookup_does_not_block_siblings() -> None:
    async def runner() -> None:
        source = FakeSource()
        source.by_title["Dune"] = RuntimeError("boom")
        source.by_title["Arrival"] = MediaItem(
            id=329865,
            title="Arrival",
            poster_path="/arrival.jpg",
            release_date="2016-11-11",
        )
        pipeline, writer, persisted = _pipeline(source)
        dune = _record(10, "Dune", media_type="movie")
        arrival = _record(11, "Arrival", media_type="movie")

        result = await pipeline.enrich([dune, arrival])
        await writer.drain()

        assert result[0] == dune
        assert result[1].poster_path == "/arrival.jpg"
        assert result[1].release_date == "2016-11-11"
        assert result[1].item_id == 11
        assert persisted == [
            (11, {"poster_path": "/arrival.jpg", "release_date": "2016-11-11"})
        ]

    asyncio.run(runner())


def test_placeholder_titles_resolved_by_id() -> None:
    async def runner() -> None:
        source = FakeSource()
        source.by_id[603] = MediaItem(
            id=603, title="The Matrix", poster_path="/matrix.jpg", runtime=136
        )
        pipeline, writer, persisted = _pipeline(source)

        result = await pipeline.enrich([_record(603, "Unknown")])
        await writer.drain()

        assert source.title_lookups == []
        assert source.detail_lookups == [603]
        assert result[0].title == "The Matrix"
        assert result[0].runtime == 136
        assert persisted[0][1]["title"] == "The Matrix"

    asyncio.run(runner())


def test_disabled_pipeline_passes_records_through() -> None:
    async def runner() -> None:
        pipeline, _, _ = _pipeline(None)
        record = _record(5, "Unknown")

        assert pipeline.enabled is False
        assert await pipeline.enrich([record]) == [record]

    asyncio.run(runner())


def test_backfill_patch_never_overwrites_stored_values() -> None:
    record = _record(7, "My Title", media_type="tv", poster_path="/mine.jpg")
    source = MediaItem(
        id=7,
        media_type="movie",
        title="Their Title",
        poster_path="/theirs.jpg",
        backdrop_path="/backdrop.jpg",
    )

    assert backfill_patch(record, source).values() == {"backdrop_path": "/backdrop.jpg"}
