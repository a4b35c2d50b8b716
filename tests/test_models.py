import pytest
from pydantic import ValidationError

from app.models import MediaItem, MediaPatch, MediaRecord, SearchFilters
from app.seed import find_seed_item


def test_media_item_accepts_tmdb_tv_payload():
    item = MediaItem.model_validate(
        {
            "id": 1396,
            "media_type": "tv",
            "name": "Breaking Bad",
            "first_air_date": "2008-01-20",
            "genres": [{"id": 18, "name": "Drama"}],
            "runtime": [45, 47],
            "poster_path": "",
        }
    )

    assert item.title == "Breaking Bad"
    assert item.release_date == "2008-01-20"
    assert item.year == 2008
    assert item.genres == ("drama",)
    assert item.runtime == 45
    assert item.poster_path is None


def test_media_item_is_frozen():
    item = MediaItem(id=1, title="Inception")
    with pytest.raises(ValidationError):
        item.title = "Other"  # type: ignore[misc]

    updated = item.model_copy(update={"title": "Other"})
    assert updated.title == "Other"
    assert item.title == "Inception"


def test_patch_values_only_include_supplied_fields():
    patch = MediaPatch.model_validate(
        {"title": "Dune", "posterPath": "/dune.jpg", "runtime": None, "rating": 5}
    )

    assert patch.values() == {"title": "Dune", "poster_path": "/dune.jpg"}


def test_record_reports_missing_fields():
    record = MediaRecord(kind="watchlist", user_id="u", item_id=7, title="#7")

    assert record.needs_enrichment()
    assert record.missing_fields() == {
        "title",
        "media_type",
        "runtime",
        "poster_path",
        "backdrop_path",
        "release_date",
        "vote_average",
    }
    assert record.to_media_item().media_type == "movie"


def test_search_filters_match_type_and_year():
    filters = SearchFilters.model_validate({"type": "Movie", "year": "2008", "genre": " "})
    dark_knight = find_seed_item(2)
    inception = find_seed_item(1)

    assert filters.genre is None
    assert dark_knight is not None and filters.matches(dark_knight)
    assert inception is not None and not filters.matches(inception)
    assert filters.cache_params() == {"type": "movie", "year": 2008}


def test_search_filters_reject_unknown_type():
    with pytest.raises(ValidationError):
        SearchFilters.model_validate({"type": "person"})
