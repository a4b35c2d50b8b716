"""Media catalog gateway: the single entry point used by the route handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import httpx
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..errors import InvalidRequestError, PersistenceError, TierFailure, UpstreamError
from ..models import (
    DataSource,
    MediaCollection,
    MediaItem,
    MediaPatch,
    MediaRecord,
    MediaType,
    Profile,
    ProfileStats,
    RecordKind,
    SearchFilters,
    SearchResults,
)
from ..seed import (
    SEED_BY_ID,
    SEED_VIEWED_IDS,
    SEED_WATCHLIST_IDS,
    find_seed_item,
    seed_featured,
    seed_recommendations,
    seed_search,
)
from ..utils import coerce_positive_int, make_cache_key
from .background import BackgroundWriter
from .cache import TTLCache
from .enrichment import EnrichmentPipeline, backfill_patch
from .fallback import FallbackChain, Tier
from .personalization import Category, PersonalizationEngine
from .provider import LiveCatalog
from .rate_limit import RateLimiter
from .store import InMemoryMediaStore, MediaStore, SqlMediaStore
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRENDING_TYPES = frozenset({"all", "movie", "tv"})
TRENDING_WINDOWS = frozenset({"day", "week"})
MEDIA_TYPES = frozenset({"movie", "tv"})


@dataclass(frozen=True)
class TrendingRequest:
    media_type: str
    window: str


@dataclass(frozen=True)
class SearchRequest:
    query: str
    page: int
    filters: SearchFilters = field(default_factory=SearchFilters)

    @property
    def cache_key(self) -> str:
        # Unfiltered results are persisted; filters are reapplied on read.
        return make_cache_key("search", {"query": self.query, "page": self.page})


@dataclass(frozen=True)
class RecommendationRequest:
    media_type: MediaType
    item_id: int | None = None


DEMO_PROFILE = {
    "name": "CineTrack Demo",
    "avatar_url": "https://placehold.co/64x64",
    "banner_url": "https://placehold.co/1200x240",
    "bio": "Watchlist + recommandations personnelles",
    "timezone": "Europe/Paris",
}


class MediaGateway:
    """Mediate every call to TMDB and every read or write of user records.

    Upstream and persistence outages never escape this class: reads fall back
    tier by tier down to the bundled seed catalogue and writes fall back to the
    in-memory store. Only :class:`InvalidRequestError` reaches the caller.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        live: LiveCatalog | None,
        cache: TTLCache,
        store: MediaStore | None = None,
        memory_store: InMemoryMediaStore | None = None,
        writer: BackgroundWriter | None = None,
    ):
        self._settings = settings
        self._live = live
        self._cache = cache
        self._store = store
        self._memory = memory_store or InMemoryMediaStore()
        self.writer = writer or BackgroundWriter()
        self._seed_memory_store()

        self._trending_chain: FallbackChain[TrendingRequest, MediaCollection] = FallbackChain(
            "trending",
            [
                Tier("live", self._live_trending),
                Tier("seed", self._seed_trending),
            ],
        )
        self._search_chain: FallbackChain[SearchRequest, SearchResults] = FallbackChain(
            "search",
            [
                Tier("live", self._live_search),
                Tier("cache", self._cached_search),
                Tier("seed", self._seed_search),
            ],
        )
        self._recommendation_chain: FallbackChain[
            RecommendationRequest, MediaCollection
        ] = FallbackChain(
            "recommendations",
            [
                Tier("live", self._live_recommendations),
                Tier("seed", self._seed_recommendations),
            ],
        )
        self.enrichment = EnrichmentPipeline(live, self.writer, self._persist_patch)
        self.personalization = PersonalizationEngine(
            base_source=self._personalization_base,
            signal_source=self._recent_signals,
            writer=self.writer,
            persist=self._persist_patch,
            signal_limit=settings.signal_limit,
        )

    @property
    def live_enabled(self) -> bool:
        return self._live is not None

    @property
    def persistence_enabled(self) -> bool:
        return self._store is not None

    # ------------------------------------------------------------------
    # Catalog reads

    async def get_trending(self, media_type: str = "all", window: str = "week") -> MediaCollection:
        media_type = (media_type or "all").lower()
        window = (window or "week").lower()
        if media_type not in TRENDING_TYPES:
            raise InvalidRequestError(f"Unsupported media type: {media_type}")
        if window not in TRENDING_WINDOWS:
            raise InvalidRequestError(f"Unsupported time window: {window}")
        resolution = await self._trending_chain.resolve(TrendingRequest(media_type, window))
        return resolution.value

    async def search(
        self,
        query: str = "",
        page: int = 1,
        filters: SearchFilters | Mapping[str, Any] | None = None,
    ) -> SearchResults:
        if isinstance(filters, SearchFilters):
            parsed_filters = filters
        else:
            try:
                parsed_filters = SearchFilters.model_validate(dict(filters or {}))
            except ValidationError as exc:
                raise InvalidRequestError(f"Invalid search filters: {exc}") from exc
        request = SearchRequest(
            query=(query or "").strip(),
            page=coerce_positive_int(page) or 1,
            filters=parsed_filters,
        )
        resolution = await self._search_chain.resolve(request)
        return resolution.value

    async def get_recommendations(
        self, media_type: str = "movie", item_id: int | None = None
    ) -> MediaCollection:
        normalized = (media_type or "movie").lower()
        if normalized not in MEDIA_TYPES:
            raise InvalidRequestError(f"Unsupported media type: {media_type}")
        request = RecommendationRequest(normalized, coerce_positive_int(item_id))  # type: ignore[arg-type]
        resolution = await self._recommendation_chain.resolve(request)
        return resolution.value

    async def get_personalized_recommendations(
        self, user_id: str, category: str = "all"
    ) -> list[MediaItem]:
        user_id = self._require_user(user_id)
        normalized = (category or "all").lower()
        if normalized not in TRENDING_TYPES:
            raise InvalidRequestError(f"Unsupported category: {category}")
        return await self.personalization.personalize(user_id, normalized)  # type: ignore[arg-type]

    def get_featured(self) -> list[MediaItem]:
        return seed_featured("all")

    # ------------------------------------------------------------------
    # User records

    async def get_watchlist(self, user_id: str) -> list[MediaRecord]:
        return await self._read_records("watchlist", user_id)

    async def get_viewed(self, user_id: str) -> list[MediaRecord]:
        return await self._read_records("viewed", user_id, newest_first=True)

    async def get_signals(self, user_id: str) -> list[MediaRecord]:
        return await self._read_records("liked", user_id, newest_first=True)

    async def add_to_watchlist(
        self, user_id: str, item_id: Any, media: Mapping[str, Any] | None = None
    ) -> list[MediaRecord]:
        await self._record_action("watchlist", user_id, item_id, media)
        return await self.get_watchlist(user_id)

    async def remove_from_watchlist(self, user_id: str, item_id: Any) -> list[MediaRecord]:
        user_id = self._require_user(user_id)
        resolved_id = self._require_item_id(item_id)
        await self._store_call(
            "remove watchlist",
            lambda store: store.remove("watchlist", user_id, resolved_id),
        )
        return await self.get_watchlist(user_id)

    async def mark_viewed(
        self, user_id: str, item_id: Any, media: Mapping[str, Any] | None = None
    ) -> MediaRecord:
        return await self._record_action("viewed", user_id, item_id, media)

    async def like_media(
        self, user_id: str, item_id: Any, media: Mapping[str, Any] | None = None
    ) -> MediaRecord:
        return await self._record_action("liked", user_id, item_id, media)

    async def get_profile_stats(self, user_id: str) -> ProfileStats:
        user_id = self._require_user(user_id)
        viewed = await self._store_call(
            "list viewed", lambda store: store.list_records("viewed", user_id)
        )
        watchlist_count = await self._store_call(
            "count watchlist", lambda store: store.count("watchlist", user_id)
        )
        liked_count = await self._store_call(
            "count liked", lambda store: store.count("liked", user_id)
        )
        return ProfileStats(
            total_viewed=len(viewed),
            total_runtime_minutes=sum(record.runtime or 0 for record in viewed),
            watchlist_count=watchlist_count,
            liked_count=liked_count,
        )

    async def get_top_picks(self, user_id: str, limit: int = 3) -> list[MediaItem]:
        """Return the best-scored titles the user has viewed.

        Scores come from the stored records; seed scores are used only when the
        live tier is disabled.
        """

        viewed = await self.get_viewed(user_id)
        scored: list[MediaItem] = []
        for record in viewed:
            item = record.to_media_item()
            seed = SEED_BY_ID.get(record.item_id) if self._live is None else None
            if seed is not None:
                item = item.model_copy(update={"vote_average": seed.score})
            scored.append(item)
        scored.sort(key=lambda item: item.vote_average or 0.0, reverse=True)
        return scored[: max(0, limit)]

    def get_profile(self, user_id: str | None = None) -> Profile:
        return Profile(user_id=user_id or self._settings.default_user_id, **DEMO_PROFILE)

    async def reset(self) -> None:
        """Clear cached responses and restore the in-memory store to its seed."""

        await self._cache.reset()
        self._memory.clear()
        self._seed_memory_store()

    async def close(self) -> None:
        await self.writer.drain()

    # ------------------------------------------------------------------
    # Tiers

    async def _live_trending(self, request: TrendingRequest) -> MediaCollection:
        live = self._require_live()
        try:
            items = await live.trending(request.media_type, request.window)
        except UpstreamError as exc:
            raise TierFailure("live", exc) from exc
        return MediaCollection(results=items, source="live")

    async def _seed_trending(self, request: TrendingRequest) -> MediaCollection:
        return MediaCollection(results=seed_featured(request.media_type), source="seed")

    async def _live_search(self, request: SearchRequest) -> SearchResults:
        live = self._require_live()
        if not request.query:
            raise TierFailure("live", "empty query")
        try:
            items, _provider_total = await live.search(
                request.query,
                request.page,
                on_fetched=lambda fetched, _total: self._queue_search_cache(
                    request, fetched
                ),
            )
        except UpstreamError as exc:
            raise TierFailure("live", exc) from exc
        # TMDB multi search mixes media types, so filters are applied here and the
        # filtered length is the only total reported.
        return self._filtered_results(request, items, "live")

    def _queue_search_cache(self, request: SearchRequest, items: list[MediaItem]) -> None:
        payload = SearchResults(
            query=request.query,
            page=request.page,
            total_results=len(items),
            results=items,
            source="live",
        ).model_dump(mode="json")
        self.writer.submit(
            f"search cache {request.cache_key}",
            lambda: self._store_call(
                "write search cache",
                lambda store: store.put_search_cache(request.cache_key, payload),
            ),
        )

    async def _cached_search(self, request: SearchRequest) -> SearchResults:
        payload = await self._store_call(
            "read search cache",
            lambda store: store.get_search_cache(request.cache_key),
        )
        if payload is None:
            raise TierFailure("cache", "no persisted result")
        try:
            cached = SearchResults.model_validate(payload)
        except ValidationError as exc:
            raise TierFailure("cache", exc) from exc
        return self._filtered_results(request, cached.results, "cache")

    @staticmethod
    def _filtered_results(
        request: SearchRequest, items: list[MediaItem], source: DataSource
    ) -> SearchResults:
        filtered = [item for item in items if request.filters.matches(item)]
        return SearchResults(
            query=request.query,
            page=request.page,
            total_results=len(filtered),
            results=filtered,
            source=source,
        )

    async def _seed_search(self, request: SearchRequest) -> SearchResults:
        return seed_search(request.query, request.filters, request.page)

    async def _live_recommendations(self, request: RecommendationRequest) -> MediaCollection:
        live = self._require_live()
        try:
            items = await live.recommendations(request.media_type, request.item_id)
        except UpstreamError as exc:
            raise TierFailure("live", exc) from exc
        return MediaCollection(results=items, source="live")

    async def _seed_recommendations(self, request: RecommendationRequest) -> MediaCollection:
        return MediaCollection(
            results=seed_recommendations(request.media_type), source="seed"
        )

    def _require_live(self) -> LiveCatalog:
        if self._live is None:
            raise TierFailure("live", "TMDB credentials not configured")
        return self._live

    # ------------------------------------------------------------------
    # Personalisation sources

    async def _personalization_base(self, category: Category) -> list[MediaItem]:
        if category == "all":
            movies = await self.get_recommendations("movie")
            shows = await self.get_recommendations("tv")
            return [*movies.results, *shows.results]
        collection = await self.get_recommendations(category)
        return list(collection.results)

    async def _recent_signals(self, user_id: str, limit: int) -> list[MediaRecord]:
        return await self._store_call(
            "list liked",
            lambda store: store.list_records(
                "liked", user_id, newest_first=True, limit=limit
            ),
        )

    # ------------------------------------------------------------------
    # Store helpers

    async def _store_call(self, action: str, call: Callable[[MediaStore], Awaitable[T]]) -> T:
        if self._store is not None:
            try:
                return await call(self._store)
            except PersistenceError as exc:
                logger.warning(
                    "Persisted store unavailable for %s, using in-memory store: %s",
                    action,
                    exc,
                )
        return await call(self._memory)

    async def _persist_patch(
        self, record: MediaRecord, patch: MediaPatch
    ) -> MediaRecord | None:
        # Update-only: a record removed while the lookup ran must stay removed.
        store: MediaStore = self._store if self._store is not None else self._memory
        updated = await store.update_existing(
            record.kind, record.user_id, record.item_id, patch
        )
        if updated is None:
            logger.debug(
                "Skipping backfill for removed %s item %s", record.kind, record.item_id
            )
        return updated

    async def _read_records(
        self, kind: RecordKind, user_id: str, *, newest_first: bool = False
    ) -> list[MediaRecord]:
        user_id = self._require_user(user_id)
        records = await self._store_call(
            f"list {kind}",
            lambda store: store.list_records(kind, user_id, newest_first=newest_first),
        )
        return await self.enrichment.enrich(records)

    async def _record_action(
        self,
        kind: RecordKind,
        user_id: str,
        item_id: Any,
        media: Mapping[str, Any] | None,
    ) -> MediaRecord:
        user_id = self._require_user(user_id)
        resolved_id = self._require_item_id(item_id)
        try:
            patch = MediaPatch.model_validate(dict(media or {}))
        except ValidationError as exc:
            raise InvalidRequestError(f"Invalid media payload: {exc}") from exc

        record = await self._store_call(
            f"upsert {kind}",
            lambda store: store.upsert(kind, user_id, resolved_id, patch),
        )
        if not record.missing_fields():
            return record

        reference = await self._reference_item(record)
        if reference is None:
            return record
        backfill = backfill_patch(record, reference)
        if not backfill.values():
            return record
        updated = await self._store_call(
            f"backfill {kind}",
            lambda store: store.update_existing(kind, user_id, resolved_id, backfill),
        )
        return updated or record

    async def _reference_item(self, record: MediaRecord) -> MediaItem | None:
        """Resolve reference metadata for ``record``.

        Seed ids overlap real TMDB ids, so the seed catalogue is only consulted
        when the live tier is disabled or the detail lookup fails.
        """

        if self._live is not None:
            try:
                return await self._live.details(
                    record.media_type or "movie", record.item_id
                )
            except UpstreamError as exc:
                logger.info(
                    "Could not resolve details for item %s: %s", record.item_id, exc
                )
        return find_seed_item(record.item_id)

    def _seed_memory_store(self) -> None:
        user_id = self._settings.default_user_id
        self._memory.seed(
            "viewed", user_id, [SEED_BY_ID[item_id].to_media_item() for item_id in SEED_VIEWED_IDS]
        )
        self._memory.seed(
            "watchlist",
            user_id,
            [SEED_BY_ID[item_id].to_media_item() for item_id in SEED_WATCHLIST_IDS],
        )

    def _require_user(self, user_id: str | None) -> str:
        cleaned = (user_id or "").strip()
        if not cleaned:
            raise InvalidRequestError("userId is required")
        return cleaned

    @staticmethod
    def _require_item_id(item_id: Any) -> int:
        resolved = coerce_positive_int(item_id)
        if resolved is None:
            raise InvalidRequestError("mediaId is required")
        return resolved


def build_gateway(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    *,
    cache: TTLCache | None = None,
    rate_limiter: RateLimiter | None = None,
) -> MediaGateway:
    """Assemble a gateway from settings and whatever collaborators are available."""

    cache = cache or TTLCache()
    live: LiveCatalog | None = None
    if settings.has_tmdb_credentials and http_client is not None:
        limiter = rate_limiter or RateLimiter(settings.rate_limit_interval_seconds)
        live = LiveCatalog(settings, TMDBClient(settings, http_client, limiter), cache)
    else:
        logger.info("TMDB credentials missing; serving seed data only")

    store: MediaStore | None = None
    if session_factory is not None:
        store = SqlMediaStore(session_factory)
    else:
        logger.info("No database configured; using the in-memory store")

    return MediaGateway(settings, live=live, cache=cache, store=store)
