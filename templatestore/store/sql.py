"""SQLite-backed store on SQLAlchemy.

SQLAlchemy sessions are blocking; every public coroutine hands the work to a
worker thread with asyncio.to_thread so callers keep a cooperative model.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator, Mapping

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import Base, create_library_engine, make_session_factory
from ..errors import StorageError
from ..models import KeyValueEntry, LibraryRecord
from .base import CATEGORIES, LibraryStore, TEMPLATES, check_store

log = logging.getLogger(__name__)

# record index name -> LibraryRecord column
_INDEX_COLUMNS = {
    (TEMPLATES, "category"): LibraryRecord.category,
    (TEMPLATES, "isPrebuilt"): LibraryRecord.is_prebuilt,
    (CATEGORIES, "name"): LibraryRecord.name,
    (CATEGORIES, "isPrebuilt"): LibraryRecord.is_prebuilt,
}


class SqlStore(LibraryStore):
    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        Base.metadata.create_all(bind=engine)

    @classmethod
    def from_path(cls, sqlite_path: str) -> "SqlStore":
        return cls(create_library_engine(sqlite_path))

    @contextmanager
    def db_session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            log.warning("Storage operation %s failed: %s", fn.__name__, e)
            raise StorageError(f"Storage operation failed: {fn.__name__}", details=str(e)) from e

    # Record side
    async def get(self, store: str, key: str) -> dict[str, Any] | None:
        check_store(store)
        return await self._run(self._get_sync, store, key)

    async def put(self, store: str, record: Mapping[str, Any]) -> None:
        check_store(store)
        key = record.get("id")
        if not isinstance(key, str) or not key:
            raise StorageError(f"Record for '{store}' has no id")
        await self._run(self._put_sync, store, dict(record))

    async def delete(self, store: str, key: str) -> None:
        check_store(store)
        await self._run(self._delete_sync, store, key)

    async def list_by_index(self, store: str, index_name: str, value: Any) -> list[dict[str, Any]]:
        check_store(store, index_name)
        return await self._run(self._list_sync, store, index_name, value)

    async def list_all(self, store: str) -> list[dict[str, Any]]:
        check_store(store)
        return await self._run(self._list_sync, store, None, None)

    # Key-value side
    async def get_values(self, keys: Iterable[str]) -> dict[str, Any]:
        return await self._run(self._get_values_sync, list(keys))

    async def set_values(self, values: Mapping[str, Any]) -> None:
        await self._run(self._set_values_sync, dict(values))

    async def remove_values(self, keys: Iterable[str]) -> None:
        await self._run(self._remove_values_sync, list(keys))

    async def close(self) -> None:
        await asyncio.to_thread(self.engine.dispose)

    # Blocking implementations
    def _get_sync(self, store: str, key: str) -> dict[str, Any] | None:
        with self.db_session() as db:
            row = db.get(LibraryRecord, (store, key))
            return json.loads(row.data_json) if row else None

    def _put_sync(self, store: str, record: dict[str, Any]) -> None:
        with self.db_session() as db:
            row = db.get(LibraryRecord, (store, record["id"]))
            if row is None:
                row = LibraryRecord(store=store, id=record["id"])
                db.add(row)
            row.category = str(record.get("category") or "")
            row.name = str(record.get("name") or "")
            row.is_prebuilt = bool(record.get("isPrebuilt"))
            row.data_json = json.dumps(record, ensure_ascii=False)
            row.updated_at = datetime.utcnow()
            db.commit()

    def _delete_sync(self, store: str, key: str) -> None:
        with self.db_session() as db:
            db.execute(delete(LibraryRecord).where(LibraryRecord.store == store, LibraryRecord.id == key))
            db.commit()

    def _list_sync(self, store: str, index_name: str | None, value: Any) -> list[dict[str, Any]]:
        stmt = select(LibraryRecord).where(LibraryRecord.store == store)
        if index_name is not None:
            column = _INDEX_COLUMNS[(store, index_name)]
            if index_name == "isPrebuilt":
                value = bool(value)
            stmt = stmt.where(column == value)
        stmt = stmt.order_by(LibraryRecord.id)
        with self.db_session() as db:
            return [json.loads(row.data_json) for row in db.scalars(stmt)]

    def _get_values_sync(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        with self.db_session() as db:
            rows = db.scalars(select(KeyValueEntry).where(KeyValueEntry.key.in_(keys)))
            return {row.key: json.loads(row.value_json) for row in rows}

    def _set_values_sync(self, values: dict[str, Any]) -> None:
        with self.db_session() as db:
            for key, value in values.items():
                row = db.get(KeyValueEntry, key)
                if row is None:
                    row = KeyValueEntry(key=key)
                    db.add(row)
                row.value_json = json.dumps(value, ensure_ascii=False)
                row.updated_at = datetime.utcnow()
            db.commit()

    def _remove_values_sync(self, keys: list[str]) -> None:
        if not keys:
            return
        with self.db_session() as db:
            db.execute(delete(KeyValueEntry).where(KeyValueEntry.key.in_(keys)))
            db.commit()
