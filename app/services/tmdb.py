"""Client for The Movie Database (TMDB) v3 API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import UpstreamError
from ..models import MediaItem, MediaType
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)

SUPPORTED_MEDIA_TYPES: frozenset[str] = frozenset({"movie", "tv"})


class TMDBClient:
    """Thin wrapper around the TMDB HTTP API.

    Every request waits on the shared :class:`RateLimiter` and any transport
    error, error status or unexpected payload is raised as :class:`UpstreamError`.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        rate_limiter: RateLimiter,
    ):
        if not settings.has_tmdb_credentials:
            raise ValueError("TMDB credentials are required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._limiter = rate_limiter

    def _auth(self) -> tuple[dict[str, str], dict[str, str]]:
        headers = {"Accept": "application/json"}
        params: dict[str, str] = {}
        if self._settings.tmdb_auth_mode == "token":
            headers["Authorization"] = f"Bearer {self._settings.tmdb_access_token}"
        elif self._settings.tmdb_api_key:
            params["api_key"] = self._settings.tmdb_api_key
        return headers, params

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        headers, auth_params = self._auth()
        query: dict[str, Any] = {"language": self._settings.tmdb_language}
        query.update(params or {})
        query.update(auth_params)

        await self._limiter.wait()
        try:
            response = await self._client.get(path, params=query, headers=headers)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"TMDB request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise UpstreamError(
                f"TMDB request to {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"TMDB returned invalid JSON for {path}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"TMDB returned an unexpected payload for {path}")
        return payload

    async def trending(self, media_type: str = "all", window: str = "week") -> list[MediaItem]:
        payload = await self._get(f"/trending/{media_type}/{window}")
        default_type = media_type if media_type in SUPPORTED_MEDIA_TYPES else None
        return self._parse_results(payload, default_type=default_type)

    async def search_multi(self, query: str, page: int = 1) -> tuple[list[MediaItem], int]:
        """Return matching movies and shows together with TMDB's reported total."""

        payload = await self._get(
            "/search/multi",
            {"query": query, "page": page, "include_adult": "false"},
        )
        total = payload.get("total_results")
        return self._parse_results(payload), int(total) if isinstance(total, int) else 0

    async def recommendations(
        self, media_type: MediaType, item_id: int | None = None
    ) -> list[MediaItem]:
        if item_id:
            path = f"/{media_type}/{item_id}/recommendations"
        else:
            path = f"/{media_type}/top_rated"
        payload = await self._get(path)
        return self._parse_results(payload, default_type=media_type)

    async def details(self, media_type: MediaType, item_id: int) -> MediaItem:
        payload = await self._get(f"/{media_type}/{item_id}")
        if "episode_run_time" in payload and "runtime" not in payload:
            payload["runtime"] = payload.get("episode_run_time")
        payload.setdefault("media_type", media_type)
        item = self._parse_item(payload, default_type=media_type)
        if item is None:
            raise UpstreamError(f"TMDB returned an unusable record for {media_type}/{item_id}")
        return item

    async def search_title(
        self, title: str, *, media_type: MediaType, year: int | None = None
    ) -> MediaItem | None:
        """Return the best search match for the supplied title."""

        params: dict[str, Any] = {"query": title, "include_adult": "false", "page": 1}
        if year:
            if media_type == "movie":
                params["year"] = year
            else:
                params["first_air_date_year"] = year
        payload = await self._get(f"/search/{media_type}", params)
        candidates = self._parse_results(payload, default_type=media_type)
        if not candidates:
            return None

        normalized_title = title.casefold()
        best_match: MediaItem | None = None
        for candidate in candidates:
            if not candidate.title:
                continue
            if candidate.title.casefold() == normalized_title:
                if year is None or candidate.year == year:
                    return candidate
            if best_match is None:
                best_match = candidate
            elif year is not None and candidate.year == year and best_match.year != year:
                best_match = candidate
        return best_match

    def _parse_results(
        self, payload: dict[str, Any], *, default_type: str | None = None
    ) -> list[MediaItem]:
        raw_results = payload.get("results")
        if not isinstance(raw_results, list):
            raise UpstreamError("TMDB payload is missing a results list")
        items: list[MediaItem] = []
        for entry in raw_results:
            if not isinstance(entry, dict):
                continue
            item = self._parse_item(entry, default_type=default_type)
            if item is not None:
                items.append(item)
        return items

    @staticmethod
    def _parse_item(entry: dict[str, Any], *, default_type: str | None) -> MediaItem | None:
        media_type = entry.get("media_type") or default_type
        if media_type not in SUPPORTED_MEDIA_TYPES:
            # People and other non-title results are not media.
            return None
        if not isinstance(entry.get("id"), int):
            return None
        data = dict(entry)
        data["media_type"] = media_type
        try:
            return MediaItem.model_validate(data)
        except ValueError:
            logger.debug("Skipping malformed TMDB record %s", entry.get("id"))
            return None
