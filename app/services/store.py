"""Persisted viewed / watchlist / liked collections and the search cache."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import RECORD_MODELS, SearchCacheRecord
from ..errors import PersistenceError
from ..models import MediaItem, MediaPatch, MediaRecord, RecordKind

logger = logging.getLogger(__name__)


class MediaStore(Protocol):
    """Operations the gateway needs from a record store."""

    async def upsert(
        self,
        kind: RecordKind,
        user_id: str,
        item_id: int,
        patch: MediaPatch,
        *,
        touch: bool = True,
    ) -> MediaRecord: ...

    async def update_existing(
        self, kind: RecordKind, user_id: str, item_id: int, patch: MediaPatch
    ) -> MediaRecord | None: ...

    async def remove(self, kind: RecordKind, user_id: str, item_id: int) -> bool: ...

    async def list_records(
        self,
        kind: RecordKind,
        user_id: str,
        *,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[MediaRecord]: ...

    async def count(self, kind: RecordKind, user_id: str) -> int: ...

    async def get_search_cache(self, cache_key: str) -> dict[str, Any] | None: ...

    async def put_search_cache(self, cache_key: str, payload: dict[str, Any]) -> None: ...


class SqlMediaStore:
    """SQLAlchemy-backed store; every failure surfaces as ``PersistenceError``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def upsert(
        self,
        kind: RecordKind,
        user_id: str,
        item_id: int,
        patch: MediaPatch,
        *,
        touch: bool = True,
    ) -> MediaRecord:
        model, stamp = RECORD_MODELS[kind]
        values = patch.values()
        try:
            async with self._session_factory() as session:
                row = await self._find(session, model, user_id, item_id)
                now = datetime.utcnow()
                if row is None:
                    row = model(user_id=user_id, item_id=item_id, **values)
                    setattr(row, stamp, now)
                    session.add(row)
                else:
                    self._apply(row, values, stamp if touch else None, now)
                try:
                    await session.commit()
                except IntegrityError:
                    # A concurrent writer inserted the same (user, item) first.
                    await session.rollback()
                    logger.debug("Retrying %s upsert for item %s as update", kind, item_id)
                    row = await self._find(session, model, user_id, item_id)
                    if row is None:
                        raise
                    self._apply(row, values, stamp if touch else None, now)
                    await session.commit()
                return self._to_record(kind, row, stamp)
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError(f"Failed to upsert {kind} item {item_id}: {exc}") from exc

    async def update_existing(
        self, kind: RecordKind, user_id: str, item_id: int, patch: MediaPatch
    ) -> MediaRecord | None:
        """Apply ``patch`` to an existing row without touching its timestamp.

        Returns ``None`` when the row is gone; nothing is inserted.
        """

        model, stamp = RECORD_MODELS[kind]
        try:
            async with self._session_factory() as session:
                row = await self._find(session, model, user_id, item_id)
                if row is None:
                    return None
                self._apply(row, patch.values(), None, datetime.utcnow())
                await session.commit()
                return self._to_record(kind, row, stamp)
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError(f"Failed to update {kind} item {item_id}: {exc}") from exc

    async def remove(self, kind: RecordKind, user_id: str, item_id: int) -> bool:
        model, _ = RECORD_MODELS[kind]
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(model).where(model.user_id == user_id, model.item_id == item_id)
                )
                await session.commit()
                return bool(result.rowcount)
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError(f"Failed to remove {kind} item {item_id}: {exc}") from exc

    async def list_records(
        self,
        kind: RecordKind,
        user_id: str,
        *,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[MediaRecord]:
        model, stamp = RECORD_MODELS[kind]
        column = getattr(model, stamp)
        ordering = (column.desc(), model.id.desc()) if newest_first else (column, model.id)
        stmt = select(model).where(model.user_id == user_id).order_by(*ordering)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_record(kind, row, stamp) for row in result.scalars()]
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError(f"Failed to list {kind} records: {exc}") from exc

    async def count(self, kind: RecordKind, user_id: str) -> int:
        model, _ = RECORD_MODELS[kind]
        stmt = select(func.count()).select_from(model).where(model.user_id == user_id)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar_one())
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError(f"Failed to count {kind} records: {exc}") from exc

    async def get_search_cache(self, cache_key: str) -> dict[str, Any] | None:
        try:
            async with self._session_factory() as session:
                record = await session.get(SearchCacheRecord, cache_key)
                return dict(record.payload) if record is not None else None
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError(f"Failed to read search cache: {exc}") from exc

    async def put_search_cache(self, cache_key: str, payload: dict[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                record = await session.get(SearchCacheRecord, cache_key)
                if record is None:
                    session.add(SearchCacheRecord(cache_key=cache_key, payload=payload))
                else:
                    record.payload = payload
                    record.updated_at = datetime.utcnow()
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceError(f"Failed to write search cache: {exc}") from exc

    @staticmethod
    async def _find(session: AsyncSession, model, user_id: str, item_id: int):
        result = await session.execute(
            select(model).where(model.user_id == user_id, model.item_id == item_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _apply(row, values: dict[str, Any], stamp: str | None, now: datetime) -> None:
        for key, value in values.items():
            setattr(row, key, value)
        if stamp:
            setattr(row, stamp, now)

    @staticmethod
    def _to_record(kind: RecordKind, row, stamp: str) -> MediaRecord:
        return MediaRecord(
            kind=kind,
            user_id=row.user_id,
            item_id=row.item_id,
            media_type=row.media_type or None,
            title=row.title or "",
            runtime=row.runtime,
            poster_path=row.poster_path,
            backdrop_path=row.backdrop_path,
            release_date=row.release_date,
            vote_average=row.vote_average,
            recorded_at=getattr(row, stamp) or datetime.utcnow(),
        )


class InMemoryMediaStore:
    """Process-local store used when no database is configured or reachable."""

    def __init__(self) -> None:
        self._records: dict[RecordKind, dict[tuple[str, int], MediaRecord]] = {
            "viewed": {},
            "watchlist": {},
            "liked": {},
        }
        self._search_cache: dict[str, dict[str, Any]] = {}
        self._order: dict[tuple[RecordKind, str, int], int] = {}
        self._sequence = 0

    def clear(self) -> None:
        for collection in self._records.values():
            collection.clear()
        self._search_cache.clear()
        self._order.clear()

    def seed(self, kind: RecordKind, user_id: str, items: Iterable[MediaItem]) -> None:
        """Preload ``items`` for ``user_id`` in the given order."""

        for item in items:
            self._records[kind][(user_id, item.id)] = MediaRecord.from_media(
                kind, user_id, item
            )
            self._bump(kind, user_id, item.id)

    async def upsert(
        self,
        kind: RecordKind,
        user_id: str,
        item_id: int,
        patch: MediaPatch,
        *,
        touch: bool = True,
    ) -> MediaRecord:
        collection = self._records[kind]
        key = (user_id, item_id)
        values = patch.values()
        existing = collection.get(key)
        if existing is None:
            record = MediaRecord(kind=kind, user_id=user_id, item_id=item_id, **values)
            self._bump(kind, user_id, item_id)
        else:
            if touch:
                values["recorded_at"] = datetime.utcnow()
                self._bump(kind, user_id, item_id)
            record = existing.model_copy(update=values)
        collection[key] = record
        return record

    async def update_existing(
        self, kind: RecordKind, user_id: str, item_id: int, patch: MediaPatch
    ) -> MediaRecord | None:
        collection = self._records[kind]
        existing = collection.get((user_id, item_id))
        if existing is None:
            return None
        record = existing.model_copy(update=patch.values())
        collection[(user_id, item_id)] = record
        return record

    async def remove(self, kind: RecordKind, user_id: str, item_id: int) -> bool:
        self._order.pop((kind, user_id, item_id), None)
        return self._records[kind].pop((user_id, item_id), None) is not None

    async def list_records(
        self,
        kind: RecordKind,
        user_id: str,
        *,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[MediaRecord]:
        records = [
            record
            for (owner, _), record in self._records[kind].items()
            if owner == user_id
        ]
        records.sort(
            key=lambda record: (
                record.recorded_at,
                self._order.get((kind, user_id, record.item_id), 0),
            ),
            reverse=newest_first,
        )
        if limit is not None:
            records = records[:limit]
        return records

    async def count(self, kind: RecordKind, user_id: str) -> int:
        return sum(1 for owner, _ in self._records[kind] if owner == user_id)

    async def get_search_cache(self, cache_key: str) -> dict[str, Any] | None:
        payload = self._search_cache.get(cache_key)
        return dict(payload) if payload is not None else None

    async def put_search_cache(self, cache_key: str, payload: dict[str, Any]) -> None:
        self._search_cache[cache_key] = dict(payload)

    def _bump(self, kind: RecordKind, user_id: str, item_id: int) -> None:
        self._sequence += 1
        self._order[(kind, user_id, item_id)] = self._sequence
