from __future__ import annotations

import copy
from typing import Any, Iterable, Mapping

from ..errors import StorageError
from .base import INDEXES, LibraryStore, check_store


class MemoryStore(LibraryStore):
    """In-process store. Values are deep-copied on the way in and out.

    `journal` records every mutation as (operation, store_or_kv, key).
    """

    def __init__(
        self,
        records: Mapping[str, Iterable[Mapping[str, Any]]] | None = None,
        values: Mapping[str, Any] | None = None,
    ):
        self._records: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in INDEXES}
        self._values: dict[str, Any] = copy.deepcopy(dict(values or {}))
        self.journal: list[tuple[str, str, str]] = []
        for store, items in (records or {}).items():
            check_store(store)
            for item in items:
                self._records[store][item["id"]] = copy.deepcopy(dict(item))

    async def get(self, store: str, key: str) -> dict[str, Any] | None:
        check_store(store)
        rec = self._records[store].get(key)
        return copy.deepcopy(rec) if rec is not None else None

    async def put(self, store: str, record: Mapping[str, Any]) -> None:
        check_store(store)
        key = record.get("id")
        if not isinstance(key, str) or not key:
            raise StorageError(f"Record for '{store}' has no id")
        self._records[store][key] = copy.deepcopy(dict(record))
        self.journal.append(("put", store, key))

    async def delete(self, store: str, key: str) -> None:
        check_store(store)
        self._records[store].pop(key, None)
        self.journal.append(("delete", store, key))

    async def list_by_index(self, store: str, index_name: str, value: Any) -> list[dict[str, Any]]:
        check_store(store, index_name)
        return [copy.deepcopy(r) for r in self._records[store].values() if r.get(index_name) == value]

    async def list_all(self, store: str) -> list[dict[str, Any]]:
        check_store(store)
        return [copy.deepcopy(r) for r in self._records[store].values()]

    async def get_values(self, keys: Iterable[str]) -> dict[str, Any]:
        return {k: copy.deepcopy(self._values[k]) for k in keys if k in self._values}

    async def set_values(self, values: Mapping[str, Any]) -> None:
        for k, v in values.items():
            self._values[k] = copy.deepcopy(v)
            self.journal.append(("set", "kv", k))

    async def remove_values(self, keys: Iterable[str]) -> None:
        for k in keys:
            self._values.pop(k, None)
            self.journal.append(("remove", "kv", k))
