"""Blend a user's liked titles into generic recommendations."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Literal, Sequence

from ..models import MediaItem, MediaPatch, MediaRecord
from ..utils import is_placeholder_title
from .background import BackgroundWriter
from .enrichment import PersistPatch, backfill_patch

logger = logging.getLogger(__name__)

Category = Literal["all", "movie", "tv"]
BaseSource = Callable[[Category], Awaitable[Sequence[MediaItem]]]
SignalSource = Callable[[str, int], Awaitable[Sequence[MediaRecord]]]


class PersonalizationEngine:
    """Rank liked titles above generic recommendations without duplicates."""

    def __init__(
        self,
        *,
        base_source: BaseSource,
        signal_source: SignalSource,
        writer: BackgroundWriter,
        persist: PersistPatch,
        signal_limit: int = 20,
    ):
        self._base_source = base_source
        self._signal_source = signal_source
        self._writer = writer
        self._persist = persist
        self._signal_limit = signal_limit

    async def personalize(self, user_id: str, category: Category = "all") -> list[MediaItem]:
        base, signals = await asyncio.gather(
            self._base_source(category),
            self._signal_source(user_id, self._signal_limit),
        )
        if category != "all":
            signals = [
                signal
                for signal in signals
                if signal.media_type in (None, category)
            ]
        return self.merge(signals, base)

    def merge(
        self, signals: Sequence[MediaRecord], base: Sequence[MediaItem]
    ) -> list[MediaItem]:
        """Return signal-derived items in recency order followed by unseen base items."""

        base_by_id: dict[int, MediaItem] = {}
        for item in base:
            base_by_id.setdefault(item.id, item)

        merged: list[MediaItem] = []
        seen: set[int] = set()
        for signal in signals:
            if signal.item_id in seen:
                continue
            fallback = base_by_id.get(signal.item_id)
            resolved, backfill = resolve_signal(signal, fallback)
            if backfill:
                patch = MediaPatch(**backfill)
                self._writer.submit(
                    f"backfill liked:{signal.item_id}",
                    lambda signal=signal, patch=patch: self._persist(signal, patch),
                )
            if resolved is None:
                logger.debug("Dropping liked item %s without a usable title", signal.item_id)
                continue
            seen.add(resolved.id)
            merged.append(resolved)

        for item in base:
            if item.id in seen:
                continue
            seen.add(item.id)
            merged.append(item)
        return merged


def resolve_signal(
    signal: MediaRecord, fallback: MediaItem | None
) -> tuple[MediaItem | None, dict[str, Any]]:
    """Resolve display fields for ``signal``.

    Stored values win; ``fallback`` only fills fields that are missing or a
    placeholder. Returns the display item (``None`` when no usable title could be
    found) and the values newly filled from ``fallback``.
    """

    backfill: dict[str, Any] = (
        backfill_patch(signal, fallback).values() if fallback is not None else {}
    )
    title = backfill.get("title", signal.title)
    if is_placeholder_title(title, signal.item_id):
        return None, backfill

    fields: dict[str, Any] = {
        "title": title,
        "media_type": backfill.get("media_type", signal.media_type) or "movie",
        "runtime": backfill.get("runtime", signal.runtime),
        "poster_path": backfill.get("poster_path", signal.poster_path),
        "backdrop_path": backfill.get("backdrop_path", signal.backdrop_path),
        "release_date": backfill.get("release_date", signal.release_date),
        "vote_average": backfill.get("vote_average", signal.vote_average),
    }
    if fallback is not None:
        return fallback.model_copy(update=fields), backfill
    return MediaItem(id=signal.item_id, **fields), backfill
