"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineTrack", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_access_token: str | None = Field(default=None, alias="TMDB_ACCESS_TOKEN")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")
    tmdb_timeout_seconds: float = Field(
        default=10.0, alias="TMDB_TIMEOUT", gt=0, le=120
    )
    rate_limit_interval_ms: int = Field(
        default=150, alias="TMDB_MIN_INTERVAL_MS", ge=0, le=10_000
    )

    trending_cache_seconds: int = Field(
        default=600, alias="TRENDING_CACHE_TTL", ge=0
    )
    search_cache_seconds: int = Field(default=300, alias="SEARCH_CACHE_TTL", ge=0)
    recommendations_cache_seconds: int = Field(
        default=900, alias="RECOMMENDATIONS_CACHE_TTL", ge=0
    )

    signal_limit: int = Field(default=20, alias="SIGNAL_LIMIT", ge=1, le=500)
    default_user_id: str = Field(default="demo-user", alias="DEFAULT_USER_ID")

    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", "tmdb_access_token", "database_url", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        """Treat blank environment values as unset."""

        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @property
    def has_tmdb_credentials(self) -> bool:
        """Return whether the live TMDB tier can be attempted."""

        return bool(self.tmdb_access_token or self.tmdb_api_key)

    @property
    def tmdb_auth_mode(self) -> Literal["token", "api_key"] | None:
        """Return the credential style used for TMDB requests.

        The bearer token wins when both credentials are present.
        """

        if self.tmdb_access_token:
            return "token"
        if self.tmdb_api_key:
            return "api_key"
        return None

    @property
    def rate_limit_interval_seconds(self) -> float:
        return self.rate_limit_interval_ms / 1000.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
