"""Schema generations of the library store and the migration chain between them."""

from .detector import detect_generation, detect_store_generation
from .generations import (
    CurrentState,
    FreshState,
    LegacyState,
    StoreState,
    state_for,
    upgrade_to_current,
    upgrade_to_legacy,
)
from .migrator import MigrationReport, MigrationStatus, SchemaMigrator, get_migration_status

__all__ = [
    "CurrentState",
    "FreshState",
    "LegacyState",
    "MigrationReport",
    "MigrationStatus",
    "SchemaMigrator",
    "StoreState",
    "detect_generation",
    "detect_store_generation",
    "get_migration_status",
    "state_for",
    "upgrade_to_current",
    "upgrade_to_legacy",
]
