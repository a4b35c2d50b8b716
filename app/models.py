"""Pydantic models describing media payloads and persisted records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import extract_year, is_placeholder_title

MediaType = Literal["movie", "tv"]
RecordKind = Literal["viewed", "watchlist", "liked"]
DataSource = Literal["live", "cache", "seed"]


class MediaItem(BaseModel):
    """Canonical TMDB record as returned to callers.

    Instances are frozen; derive modified copies with ``model_copy``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    media_type: MediaType = Field(
        default="movie", validation_alias=AliasChoices("media_type", "type")
    )
    title: str = Field(default="", validation_alias=AliasChoices("title", "name"))
    overview: str | None = None
    poster_path: str | None = Field(
        default=None, validation_alias=AliasChoices("poster_path", "posterPath")
    )
    backdrop_path: str | None = Field(
        default=None, validation_alias=AliasChoices("backdrop_path", "backdropPath")
    )
    release_date: str | None = Field(
        default=None,
        validation_alias=AliasChoices("release_date", "first_air_date", "releaseDate"),
    )
    vote_average: float | None = Field(
        default=None, validation_alias=AliasChoices("vote_average", "voteAverage", "score")
    )
    genres: tuple[str, ...] = ()
    runtime: int | None = None

    @field_validator("genres", mode="before")
    @classmethod
    def _normalise_genres(cls, value: object) -> object:
        """Accept TMDB genre objects as well as plain names."""

        if value is None:
            return ()
        if isinstance(value, (list, tuple, set)):
            names: list[str] = []
            for entry in value:
                if isinstance(entry, dict):
                    name = entry.get("name")
                    if name:
                        names.append(str(name).lower())
                elif isinstance(entry, str) and entry:
                    names.append(entry.lower())
            return tuple(names)
        return value

    @field_validator("release_date", "poster_path", "backdrop_path", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("runtime", mode="before")
    @classmethod
    def _coerce_runtime(cls, value: object) -> object:
        # TV details report runtimes as a list of episode lengths.
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @property
    def year(self) -> int | None:
        return extract_year(self.release_date)

    def has_usable_title(self) -> bool:
        return not is_placeholder_title(self.title, self.id)


class SearchFilters(BaseModel):
    """Optional narrowing applied to a search."""

    type: MediaType | None = None
    year: int | None = None
    genre: str | None = None

    @field_validator("type", "genre", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped.lower() or None
        return value

    @field_validator("year", mode="before")
    @classmethod
    def _parse_year(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return value

    def cache_params(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def matches(self, item: MediaItem) -> bool:
        """Return whether ``item`` satisfies every configured filter."""

        if self.type and item.media_type != self.type:
            return False
        if self.year and item.year != self.year:
            return False
        if self.genre and self.genre not in item.genres:
            return False
        return True


class MediaCollection(BaseModel):
    """A list of media together with the tier that produced it."""

    results: list[MediaItem] = Field(default_factory=list)
    source: DataSource = "seed"


class SearchResults(MediaCollection):
    """Search payload; ``total_results`` always equals ``len(results)``."""

    query: str = ""
    page: int = 1
    total_results: int = 0


class MediaRecord(BaseModel):
    """A persisted viewed, watchlist or liked entry for one user."""

    model_config = ConfigDict(populate_by_name=True)

    kind: RecordKind
    user_id: str
    item_id: int
    media_type: MediaType | None = None
    title: str = ""
    runtime: int | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    release_date: str | None = None
    vote_average: float | None = None
    recorded_at: datetime = Field(default_factory=datetime.utcnow)

    def needs_enrichment(self) -> bool:
        return not self.poster_path or is_placeholder_title(self.title, self.item_id)

    def missing_fields(self) -> set[str]:
        missing: set[str] = set()
        if is_placeholder_title(self.title, self.item_id):
            missing.add("title")
        for name in (
            "media_type",
            "runtime",
            "poster_path",
            "backdrop_path",
            "release_date",
            "vote_average",
        ):
            if getattr(self, name) in (None, ""):
                missing.add(name)
        return missing

    def to_media_item(self) -> MediaItem:
        return MediaItem(
            id=self.item_id,
            media_type=self.media_type or "movie",
            title=self.title,
            poster_path=self.poster_path,
            backdrop_path=self.backdrop_path,
            release_date=self.release_date,
            vote_average=self.vote_average,
            runtime=self.runtime,
        )

    @classmethod
    def from_media(
        cls,
        kind: RecordKind,
        user_id: str,
        item: MediaItem,
        *,
        recorded_at: datetime | None = None,
    ) -> "MediaRecord":
        return cls(
            kind=kind,
            user_id=user_id,
            item_id=item.id,
            media_type=item.media_type,
            title=item.title,
            runtime=item.runtime,
            poster_path=item.poster_path,
            backdrop_path=item.backdrop_path,
            release_date=item.release_date,
            vote_average=item.vote_average,
            recorded_at=recorded_at or datetime.utcnow(),
        )


class MediaPatch(BaseModel):
    """Fields supplied by a caller when recording a media action.

    Only fields that were actually provided are applied on upsert.
    """

    media_type: MediaType | None = Field(
        default=None, validation_alias=AliasChoices("media_type", "type")
    )
    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "name"))
    runtime: int | None = None
    poster_path: str | None = Field(
        default=None, validation_alias=AliasChoices("poster_path", "posterPath")
    )
    backdrop_path: str | None = Field(
        default=None, validation_alias=AliasChoices("backdrop_path", "backdropPath")
    )
    release_date: str | None = Field(
        default=None,
        validation_alias=AliasChoices("release_date", "first_air_date", "releaseDate"),
    )
    vote_average: float | None = Field(
        default=None, validation_alias=AliasChoices("vote_average", "voteAverage", "score")
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def values(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None and value != ""
        }

    @classmethod
    def from_media(cls, item: MediaItem) -> "MediaPatch":
        payload = {
            "media_type": item.media_type,
            "title": item.title or None,
            "runtime": item.runtime,
            "poster_path": item.poster_path,
            "backdrop_path": item.backdrop_path,
            "release_date": item.release_date,
            "vote_average": item.vote_average,
        }
        return cls.model_validate({k: v for k, v in payload.items() if v is not None})


class ProfileStats(BaseModel):
    total_viewed: int = 0
    total_runtime_minutes: int = 0
    watchlist_count: int = 0
    liked_count: int = 0


class Profile(BaseModel):
    """Static profile shown on the home page."""

    user_id: str
    name: str
    avatar_url: str
    banner_url: str
    bio: str
    timezone: str
