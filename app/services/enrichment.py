"""Best-effort backfill of artwork, titles and dates on persisted records."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol, Sequence

from ..errors import GatewayError
from ..models import MediaItem, MediaPatch, MediaRecord, MediaType
from ..utils import extract_year, is_placeholder_title
from .background import BackgroundWriter

logger = logging.getLogger(__name__)

PersistPatch = Callable[[MediaRecord, MediaPatch], Awaitable[Any]]


class MetadataSource(Protocol):
    async def find_by_title(
        self, title: str, *, media_type: MediaType, year: int | None = None
    ) -> MediaItem | None: ...

    async def details(self, media_type: MediaType, item_id: int) -> MediaItem: ...


class EnrichmentPipeline:
    """Fill gaps on stored records from the live provider.

    Each incomplete record is looked up on its own task. Results are merged into
    the records returned to the caller straight away while the matching
    database update is handed to the :class:`BackgroundWriter`.
    """

    def __init__(
        self,
        source: MetadataSource | None,
        writer: BackgroundWriter,
        persist: PersistPatch,
    ):
        self._source = source
        self._writer = writer
        self._persist = persist

    @property
    def enabled(self) -> bool:
        return self._source is not None

    async def enrich(self, records: Sequence[MediaRecord]) -> list[MediaRecord]:
        if self._source is None:
            return list(records)

        pending = {
            index: asyncio.create_task(self._lookup(self._source, record))
            for index, record in enumerate(records)
            if record.needs_enrichment()
        }
        if not pending:
            return list(records)

        outcomes = await asyncio.gather(*pending.values(), return_exceptions=True)
        matches: dict[int, MediaItem] = {}
        for index, outcome in zip(pending.keys(), outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Enrichment lookup failed for item %s: %s",
                    records[index].item_id,
                    outcome,
                )
                continue
            if outcome is not None:
                matches[index] = outcome

        enriched: list[MediaRecord] = []
        for index, record in enumerate(records):
            match = matches.get(index)
            if match is None:
                enriched.append(record)
                continue
            patch = backfill_patch(record, match)
            values = patch.values()
            if not values:
                enriched.append(record)
                continue
            enriched.append(record.model_copy(update=values))
            self._writer.submit(
                f"enrich {record.kind}:{record.item_id}",
                lambda record=record, patch=patch: self._persist(record, patch),
            )
        return enriched

    @staticmethod
    async def _lookup(source: MetadataSource, record: MediaRecord) -> MediaItem | None:
        media_type: MediaType = record.media_type or "movie"
        if not is_placeholder_title(record.title, record.item_id):
            try:
                match = await source.find_by_title(
                    record.title.strip(),
                    media_type=media_type,
                    year=extract_year(record.release_date),
                )
            except GatewayError as exc:
                logger.debug("Title lookup for %s failed: %s", record.title, exc)
                match = None
            if match is not None and match.poster_path:
                return match
        return await source.details(media_type, record.item_id)


def backfill_patch(record: MediaRecord, source: MediaItem) -> MediaPatch:
    """Return a patch holding only the fields ``record`` lacks and ``source`` has."""

    missing = record.missing_fields()
    values: dict[str, Any] = {}
    if "title" in missing and source.has_usable_title():
        values["title"] = source.title
    if "media_type" in missing:
        values["media_type"] = source.media_type
    for name in (
        "runtime",
        "poster_path",
        "backdrop_path",
        "release_date",
        "vote_average",
    ):
        value = getattr(source, name)
        if name in missing and value not in (None, ""):
            values[name] = value
    return MediaPatch(**values)
