"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class MediaRecordMixin:
    """Columns shared by the per-user media collections."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    item_id: Mapped[int] = mapped_column(Integer)
    media_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    runtime: Mapped[int | None] = mapped_column(Integer, nullable=True)
    poster_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    backdrop_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    release_date: Mapped[str | None] = mapped_column(String(16), nullable=True)
    vote_average: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ViewedMedia(MediaRecordMixin, Base):
    """A title the user has watched."""

    __tablename__ = "viewed_media"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_viewed_user_item"),
    )

    viewed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class WatchlistEntry(MediaRecordMixin, Base):
    """A title the user plans to watch."""

    __tablename__ = "watchlist"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_watchlist_user_item"),
    )

    added_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class LikedMedia(MediaRecordMixin, Base):
    """A title the user liked; used as a personalisation signal."""

    __tablename__ = "liked_media"
    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_liked_user_item"),
    )

    liked_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class SearchCacheRecord(Base):
    """Last successful live search payload for a cache key."""

    __tablename__ = "search_cache"

    cache_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


RECORD_MODELS = {
    "viewed": (ViewedMedia, "viewed_at"),
    "watchlist": (WatchlistEntry, "added_at"),
    "liked": (LikedMedia, "liked_at"),
}
