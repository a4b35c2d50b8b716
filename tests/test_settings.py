"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import Settings


def test_blank_credentials_are_treated_as_missing() -> None:
    """Whitespace-only TMDB credentials should disable the live tier."""

    settings = Settings(_env_file=None, TMDB_API_KEY="   ", TMDB_ACCESS_TOKEN="")

    assert settings.tmdb_api_key is None
    assert settings.tmdb_access_token is None
    assert settings.has_tmdb_credentials is False
    assert settings.tmdb_auth_mode is None


def test_access_token_preferred_over_api_key() -> None:
    settings = Settings(_env_file=None, TMDB_API_KEY="key", TMDB_ACCESS_TOKEN="token")

    assert settings.has_tmdb_credentials is True
    assert settings.tmdb_auth_mode == "token"


def test_api_key_only_uses_query_parameter_mode() -> None:
    settings = Settings(_env_file=None, TMDB_API_KEY="key")

    assert settings.tmdb_auth_mode == "api_key"


def test_defaults_match_documented_values() -> None:
    """Defaults should describe a seed-only deployment on port 3000."""

    settings = Settings(_env_file=None)

    assert settings.server_port == 3000
    assert settings.rate_limit_interval_seconds == pytest.approx(0.15)
    assert settings.trending_cache_seconds == 600
    assert settings.search_cache_seconds == 300
    assert settings.recommendations_cache_seconds == 900
    assert settings.signal_limit == 20


def test_blank_database_url_disables_persistence() -> None:
    settings = Settings(_env_file=None, DATABASE_URL="  ")

    assert settings.database_url is None


def test_negative_rate_limit_rejected() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, TMDB_MIN_INTERVAL_MS=-1)
