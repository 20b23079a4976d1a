"""Library bootstrap.

Startup order matters: logging first, then the schema migration. Imports and
queries must not touch the store before `initialize_library` returns.
"""

from __future__ import annotations

from .env_settings import EnvSettings, get_env
from .log_config import setup_logging
from .services.migration import MigrationReport, SchemaMigrator
from .store import LibraryStore, SqlStore


def open_sql_store(env: EnvSettings | None = None) -> SqlStore:
    env = env or get_env()
    return SqlStore.from_path(env.sqlite_path)


async def initialize_library(
    store: LibraryStore,
    env: EnvSettings | None = None,
    *,
    configure_logging: bool = True,
) -> MigrationReport:
    """Initialize the library with required setup steps."""
    env = env or get_env()
    if configure_logging:
        setup_logging(
            level=env.log_level,
            retention_days=env.log_retention_days,
            log_dir=env.log_dir,
        )

    # Bring the stored schema up to date
    return await SchemaMigrator().run(store)
