from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ...errors import LibraryError, MigrationError
from ...store import (
    AD_PACK_METADATA_KEY,
    CATEGORIES,
    KEYWORD_STATS_KEY,
    LibraryStore,
    SETTINGS_KEY,
    STORAGE_VERSION_KEY,
    TEMPLATES,
)
from ...utils import now_iso
from ..library.schema import CURRENT_GENERATION
from ..library.storage import recount_categories
from .detector import detect_generation, detect_store_generation
from .generations import StoreState, state_for, upgrade_to_current, upgrade_to_legacy

log = logging.getLogger(__name__)

Step = Callable[..., StoreState]


@dataclass
class MigrationReport:
    from_generation: int
    to_generation: int
    steps: list[int] = field(default_factory=list)
    templates_written: int = 0
    variants_created: int = 0
    categories_written: int = 0
    settings_written: bool = False

    @property
    def migrated(self) -> bool:
        return bool(self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromGeneration": self.from_generation,
            "toGeneration": self.to_generation,
            "steps": list(self.steps),
            "templatesWritten": self.templates_written,
            "variantsCreated": self.variants_created,
            "categoriesWritten": self.categories_written,
            "settingsWritten": self.settings_written,
        }


@dataclass
class MigrationStatus:
    current_generation: int
    target_generation: int
    needs_onboarding: bool

    @property
    def needs_migration(self) -> bool:
        return self.current_generation < self.target_generation

    @property
    def is_fresh_install(self) -> bool:
        return self.current_generation == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentGeneration": self.current_generation,
            "targetGeneration": self.target_generation,
            "needsMigration": self.needs_migration,
            "needsOnboarding": self.needs_onboarding,
            "isFreshInstall": self.is_fresh_install,
        }


class SchemaMigrator:
    """Fixed chain of generation steps.

    `migrate` is the pure part: it applies every step after `from_generation`
    up to the target, in order. `run` drives it against a store and writes the
    version marker only after everything else has been written.
    """

    STEPS: dict[int, Step] = {
        1: upgrade_to_legacy,
        2: upgrade_to_current,
    }

    def __init__(self, target_generation: int = CURRENT_GENERATION):
        if target_generation not in range(0, max(self.STEPS) + 1):
            raise ValueError(f"Unknown target generation: {target_generation}")
        self.target_generation = target_generation

    def migrate(self, state: StoreState, from_generation: int, *, now: str | None = None) -> StoreState:
        if from_generation > self.target_generation:
            raise MigrationError(
                f"Store generation {from_generation} is newer than supported generation {self.target_generation}"
            )
        now = now or now_iso()
        for step in range(from_generation + 1, self.target_generation + 1):
            state = self.STEPS[step](state, now=now)
        return state

    async def run(self, store: LibraryStore) -> MigrationReport:
        from_generation = await detect_store_generation(store)
        report = MigrationReport(from_generation=from_generation, to_generation=self.target_generation)

        if from_generation == self.target_generation:
            log.debug("Library schema is current (generation %s)", from_generation)
            return report
        if from_generation > self.target_generation:
            log.warning(
                "Library generation %s is newer than supported %s, leaving it untouched",
                from_generation, self.target_generation,
            )
            report.to_generation = from_generation
            return report

        log.info("Migrating library from generation %s to %s", from_generation, self.target_generation)
        try:
            before = await self._load(store, from_generation)
            after = self.migrate(before, from_generation)
            await self._write(store, before, after, report)
            await store.set_values({STORAGE_VERSION_KEY: self.target_generation})
        except MigrationError:
            raise
        except (LibraryError, ValueError, TypeError, KeyError) as e:
            log.error("Migration from generation %s failed: %s", from_generation, e)
            raise MigrationError(
                f"Migration from generation {from_generation} to {self.target_generation} failed",
                details=str(e),
            ) from e

        report.steps = list(range(from_generation + 1, self.target_generation + 1))
        log.info(
            "Library migrated to generation %s: %d templates written (%d variants split)",
            self.target_generation, report.templates_written, report.variants_created,
        )
        return report

    async def _load(self, store: LibraryStore, generation: int) -> StoreState:
        templates, categories, values = await asyncio.gather(
            store.list_all(TEMPLATES),
            store.list_all(CATEGORIES),
            store.get_values([SETTINGS_KEY, KEYWORD_STATS_KEY, AD_PACK_METADATA_KEY]),
        )
        return state_for(
            generation,
            templates=tuple(templates),
            categories=tuple(categories),
            settings=values.get(SETTINGS_KEY),
            keyword_stats=values.get(KEYWORD_STATS_KEY),
            ad_pack_metadata=values.get(AD_PACK_METADATA_KEY),
        )

    async def _write(self, store: LibraryStore, before: StoreState, after: StoreState, report: MigrationReport) -> None:
        # Order: new sibling templates, rewritten templates, categories, collections, settings.
        old_templates = {t.get("id"): t for t in before.templates}
        created = [t for t in after.templates if t["id"] not in old_templates]
        changed = [t for t in after.templates if t["id"] in old_templates and old_templates[t["id"]] != t]

        await asyncio.gather(*(store.put(TEMPLATES, t) for t in created))
        await asyncio.gather(*(store.put(TEMPLATES, t) for t in changed))
        report.variants_created = len(created)
        report.templates_written = len(created) + len(changed)

        old_categories = {c.get("id"): c for c in before.categories}
        categories = [c for c in after.categories if old_categories.get(c.get("id")) != c]
        await asyncio.gather(*(store.put(CATEGORIES, c) for c in categories))
        moved = {old_templates[t["id"]].get("category") for t in changed}
        touched = {t["category"] for t in created + changed} | {c for c in moved if isinstance(c, str) and c}
        if touched:
            await recount_categories(store, touched)
        report.categories_written = len(categories)

        collections: dict[str, Any] = {}
        if after.keyword_stats != before.keyword_stats:
            collections[KEYWORD_STATS_KEY] = after.keyword_stats
        if after.ad_pack_metadata != before.ad_pack_metadata:
            collections[AD_PACK_METADATA_KEY] = after.ad_pack_metadata
        if collections:
            await store.set_values(collections)

        if after.settings != before.settings:
            await store.set_values({SETTINGS_KEY: after.settings})
            report.settings_written = True


async def get_migration_status(store: LibraryStore, target_generation: int = CURRENT_GENERATION) -> MigrationStatus:
    values = await store.get_values([STORAGE_VERSION_KEY, SETTINGS_KEY])
    settings = values.get(SETTINGS_KEY)
    return MigrationStatus(
        current_generation=detect_generation(values),
        target_generation=target_generation,
        needs_onboarding=not (isinstance(settings, dict) and settings.get("onboardingCompleted")),
    )
