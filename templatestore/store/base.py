"""Abstract persistence boundary.

The core only needs these primitives: an indexed record store for templates
and categories, plus a small key-value area for settings, the schema marker
and a few top-level collections. `put` must be atomic per record; nothing
else is assumed about the storage technology.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping

from ..errors import StorageError

TEMPLATES = "templates"
CATEGORIES = "categories"

# store name -> indexed record fields
INDEXES: dict[str, tuple[str, ...]] = {
    TEMPLATES: ("category", "isPrebuilt"),
    CATEGORIES: ("name", "isPrebuilt"),
}

# Well-known key-value entries
SETTINGS_KEY = "settings"
LICENSE_KEY = "license"
KEYWORD_STATS_KEY = "keywordStats"
AD_PACK_METADATA_KEY = "adPackMetadata"
STORAGE_VERSION_KEY = "libraryStorageVersion"


def check_store(store: str, index_name: str | None = None) -> None:
    if store not in INDEXES:
        raise StorageError(f"Unknown record store '{store}'")
    if index_name is not None and index_name not in INDEXES[store]:
        raise StorageError(f"Store '{store}' has no index '{index_name}'")


class LibraryStore(ABC):
    """Async record + key-value store. Records are plain dicts keyed by `id`."""

    # Record side
    @abstractmethod
    async def get(self, store: str, key: str) -> dict[str, Any] | None:
        """Return the record or None."""

    @abstractmethod
    async def put(self, store: str, record: Mapping[str, Any]) -> None:
        """Insert or overwrite the record with the same `id`."""

    @abstractmethod
    async def delete(self, store: str, key: str) -> None:
        """Delete by id; deleting a missing record is a no-op."""

    @abstractmethod
    async def list_by_index(self, store: str, index_name: str, value: Any) -> list[dict[str, Any]]:
        """Records whose indexed field equals value."""

    @abstractmethod
    async def list_all(self, store: str) -> list[dict[str, Any]]:
        """Every record of the store."""

    # Key-value side
    @abstractmethod
    async def get_values(self, keys: Iterable[str]) -> dict[str, Any]:
        """Present keys only; absent keys are omitted from the result."""

    @abstractmethod
    async def set_values(self, values: Mapping[str, Any]) -> None:
        """Write every entry of values."""

    @abstractmethod
    async def remove_values(self, keys: Iterable[str]) -> None:
        """Remove keys; missing keys are ignored."""

    async def get_value(self, key: str, default: Any = None) -> Any:
        values = await self.get_values([key])
        return values.get(key, default)

    async def close(self) -> None:
        return None
