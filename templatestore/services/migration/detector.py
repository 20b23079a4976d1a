from __future__ import annotations

import logging
from typing import Any, Mapping

from ...errors import LibraryError
from ...store import LibraryStore, SETTINGS_KEY, STORAGE_VERSION_KEY

log = logging.getLogger(__name__)

# Settings fields that only generation 2 writes.
GENERATION_2_FIELDS = ("onboardingCompleted", "businessDescription", "aiProvider")


def detect_generation(values: Mapping[str, Any]) -> int:
    """Schema generation of a store from its marker and settings.

    Historical installs never wrote a marker, so without one the generation is
    inferred from the settings record, in this order:
      1. a truthy marker wins
      2. no settings at all -> 0 (fresh)
      3. any generation 2 settings field -> 2
      4. otherwise -> 1
    """
    marker = values.get(STORAGE_VERSION_KEY)
    if marker:
        return int(marker)

    settings = values.get(SETTINGS_KEY)
    if settings is None:
        return 0

    if isinstance(settings, Mapping) and any(f in settings for f in GENERATION_2_FIELDS):
        return 2
    return 1


async def detect_store_generation(store: LibraryStore) -> int:
    """Read the store and detect its generation. Any read error counts as 0."""
    try:
        values = await store.get_values([STORAGE_VERSION_KEY, SETTINGS_KEY])
        return detect_generation(values)
    except (LibraryError, ValueError, TypeError) as e:
        log.warning("Version detection failed, treating store as fresh: %s", e)
        return 0
