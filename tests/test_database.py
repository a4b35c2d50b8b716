from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect, text

import app.db_models  # noqa: F401  registers the tables on Base.metadata
from app.database import Database


def _initialise_legacy_schema(database_path: str) -> None:
    """Create a legacy watchlist table lacking the artwork and date columns."""

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    CREATE TABLE watchlist (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id VARCHAR(64),
                        item_id INTEGER,
                        media_type VARCHAR(16),
                        title VARCHAR(255),
                        runtime INTEGER,
                        poster_path VARCHAR(255),
                        added_at DATETIME,
                        updated_at DATETIME
                    )
                    """
                )
            )
    finally:
        engine.dispose()


def test_create_all_adds_missing_media_columns(tmp_path) -> None:
    """Schema migrations should backfill the artwork, date and score columns."""

    database_path = tmp_path / "legacy.db"
    _initialise_legacy_schema(str(database_path))

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        columns = {column["name"] for column in inspector.get_columns("watchlist")}
        tables = set(inspector.get_table_names())
    finally:
        inspector_engine.dispose()

    assert {"backdrop_path", "release_date", "vote_average"} <= columns
    assert {"viewed_media", "liked_media", "search_cache"} <= tables
