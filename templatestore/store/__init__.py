"""Persistence boundary: abstract store plus in-memory and SQLite implementations."""

from .base import (
    AD_PACK_METADATA_KEY,
    CATEGORIES,
    KEYWORD_STATS_KEY,
    LICENSE_KEY,
    LibraryStore,
    SETTINGS_KEY,
    STORAGE_VERSION_KEY,
    TEMPLATES,
)
from .memory import MemoryStore
from .sql import SqlStore

__all__ = [
    "AD_PACK_METADATA_KEY",
    "CATEGORIES",
    "KEYWORD_STATS_KEY",
    "LICENSE_KEY",
    "LibraryStore",
    "MemoryStore",
    "SETTINGS_KEY",
    "STORAGE_VERSION_KEY",
    "SqlStore",
    "TEMPLATES",
]
