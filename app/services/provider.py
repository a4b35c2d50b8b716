"""Cached, coalesced access to the live TMDB tier."""

from __future__ import annotations

from typing import Callable

from ..config import Settings
from ..models import MediaItem, MediaType
from ..utils import make_cache_key
from .cache import TTLCache
from .tmdb import TMDBClient

# Detail and title lookups rarely change; keep them for a day.
LOOKUP_CACHE_SECONDS = 86_400


class LiveCatalog:
    """Route every TMDB read through the shared TTL cache.

    Identical requests issued concurrently share one upstream call, and each
    upstream call waits on the client's rate limiter.
    """

    def __init__(self, settings: Settings, client: TMDBClient, cache: TTLCache):
        self._settings = settings
        self._client = client
        self._cache = cache

    async def trending(self, media_type: str, window: str) -> list[MediaItem]:
        key = make_cache_key("trending", {"type": media_type, "window": window})
        return await self._cache.get_or_fetch(
            key,
            self._settings.trending_cache_seconds,
            lambda: self._client.trending(media_type, window),
        )

    async def search(
        self,
        query: str,
        page: int,
        *,
        on_fetched: Callable[[list[MediaItem], int], None] | None = None,
    ) -> tuple[list[MediaItem], int]:
        """Search TMDB; ``on_fetched`` runs only when the upstream call is made."""

        key = make_cache_key("search", {"query": query, "page": page})

        async def fetch() -> tuple[list[MediaItem], int]:
            items, total = await self._client.search_multi(query, page)
            if on_fetched is not None:
                on_fetched(items, total)
            return items, total

        return await self._cache.get_or_fetch(
            key, self._settings.search_cache_seconds, fetch
        )

    async def recommendations(
        self, media_type: MediaType, item_id: int | None = None
    ) -> list[MediaItem]:
        key = make_cache_key("recommendations", {"type": media_type, "id": item_id})
        return await self._cache.get_or_fetch(
            key,
            self._settings.recommendations_cache_seconds,
            lambda: self._client.recommendations(media_type, item_id),
        )

    async def details(self, media_type: MediaType, item_id: int) -> MediaItem:
        key = make_cache_key("details", {"type": media_type, "id": item_id})
        return await self._cache.get_or_fetch(
            key,
            LOOKUP_CACHE_SECONDS,
            lambda: self._client.details(media_type, item_id),
        )

    async def find_by_title(
        self, title: str, *, media_type: MediaType, year: int | None = None
    ) -> MediaItem | None:
        key = make_cache_key(
            "title-lookup", {"title": title, "type": media_type, "year": year}
        )
        return await self._cache.get_or_fetch(
            key,
            LOOKUP_CACHE_SECONDS,
            lambda: self._client.search_title(title, media_type=media_type, year=year),
        )
