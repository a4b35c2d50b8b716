"""Static seed catalogue served when neither TMDB nor the store can answer."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import MediaItem, MediaType, SearchFilters, SearchResults


RECOMMENDATION_SCORE_THRESHOLD = 8.5


@dataclass(frozen=True)
class SeedEntry:
    """A canonical title bundled with the application."""

    id: int
    title: str
    media_type: MediaType
    runtime: int
    release_date: str
    score: float
    featured: bool
    genres: tuple[str, ...] = field(default_factory=tuple)

    def to_media_item(self) -> MediaItem:
        return MediaItem(
            id=self.id,
            media_type=self.media_type,
            title=self.title,
            release_date=self.release_date,
            vote_average=self.score,
            genres=self.genres,
            runtime=self.runtime,
        )


SEED_MEDIA: tuple[SeedEntry, ...] = (
    SeedEntry(
        id=1,
        title="Inception",
        media_type="movie",
        runtime=148,
        release_date="2010-07-16",
        score=9.0,
        featured=True,
        genres=("sci-fi", "thriller"),
    ),
    SeedEntry(
        id=2,
        title="The Dark Knight",
        media_type="movie",
        runtime=152,
        release_date="2008-07-18",
        score=9.1,
        featured=True,
        genres=("action", "crime"),
    ),
    SeedEntry(
        id=3,
        title="Breaking Bad",
        media_type="tv",
        runtime=50,
        release_date="2008-01-20",
        score=9.5,
        featured=False,
        genres=("crime", "drama"),
    ),
    SeedEntry(
        id=4,
        title="The Bear",
        media_type="tv",
        runtime=32,
        release_date="2022-06-23",
        score=8.6,
        featured=True,
        genres=("drama",),
    ),
    SeedEntry(
        id=5,
        title="Everything Everywhere All at Once",
        media_type="movie",
        runtime=139,
        release_date="2022-03-25",
        score=8.1,
        featured=False,
        genres=("sci-fi", "adventure"),
    ),
)

SEED_BY_ID: dict[int, SeedEntry] = {entry.id: entry for entry in SEED_MEDIA}

# Initial in-memory viewing history and watchlist for the demo user.
SEED_VIEWED_IDS: tuple[int, ...] = tuple(entry.id for entry in SEED_MEDIA[:3])
SEED_WATCHLIST_IDS: tuple[int, ...] = tuple(entry.id for entry in SEED_MEDIA[3:])


def find_seed_item(item_id: int) -> MediaItem | None:
    entry = SEED_BY_ID.get(item_id)
    return entry.to_media_item() if entry else None


def seed_featured(media_type: str = "all") -> list[MediaItem]:
    """Return featured seed titles, optionally narrowed to one media type."""

    return [
        entry.to_media_item()
        for entry in SEED_MEDIA
        if entry.featured and (media_type == "all" or entry.media_type == media_type)
    ]


def seed_recommendations(media_type: str | None = None) -> list[MediaItem]:
    return [
        entry.to_media_item()
        for entry in SEED_MEDIA
        if entry.score >= RECOMMENDATION_SCORE_THRESHOLD
        and (media_type in (None, "all") or entry.media_type == media_type)
    ]


def seed_search(
    query: str, filters: SearchFilters | None = None, page: int = 1
) -> SearchResults:
    """Substring title search over the seed catalogue."""

    needle = (query or "").strip().casefold()
    active_filters = filters or SearchFilters()
    results = [
        item
        for item in (entry.to_media_item() for entry in SEED_MEDIA)
        if needle in item.title.casefold() and active_filters.matches(item)
    ]
    return SearchResults(
        query=query,
        page=page,
        total_results=len(results),
        results=results,
        source="seed",
    )
