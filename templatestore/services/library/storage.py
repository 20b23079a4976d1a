from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from ...errors import ConflictError, NotFoundError, StorageError, ValidationError
from ...store import (
    AD_PACK_METADATA_KEY,
    CATEGORIES,
    LICENSE_KEY,
    LibraryStore,
    SETTINGS_KEY,
    TEMPLATES,
)
from ...utils import now_iso
from .schema import Category, License, Settings, Template
from .validator import (
    parse_category,
    parse_license,
    parse_settings,
    parse_template,
    validate_category,
    validate_template,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LibrarySnapshot:
    """Point-in-time view of every category and template."""

    categories: tuple[Category, ...]
    templates: tuple[Template, ...]

    def category_by_id(self, category_id: str) -> Category | None:
        return next((c for c in self.categories if c.id == category_id), None)

    def category_by_name(self, name: str) -> Category | None:
        wanted = (name or "").strip().casefold()
        return next((c for c in self.categories if c.name.strip().casefold() == wanted), None)

    def template_by_id(self, template_id: str) -> Template | None:
        return next((t for t in self.templates if t.id == template_id), None)

    def templates_in(self, category_id: str) -> list[Template]:
        return [t for t in self.templates if t.category == category_id]


async def load_snapshot(store: LibraryStore) -> LibrarySnapshot:
    """Read every category and template. A malformed stored record raises StorageError."""
    categories, templates = await asyncio.gather(store.list_all(CATEGORIES), store.list_all(TEMPLATES))
    try:
        return LibrarySnapshot(
            categories=tuple(Category.model_validate(c) for c in categories),
            templates=tuple(Template.model_validate(t) for t in templates),
        )
    except PydanticValidationError as e:
        log.error("Stored library records do not match the current schema: %s", e)
        raise StorageError("Stored library records are malformed; run the schema migration", details=str(e)) from e


# Categories

async def get_category(store: LibraryStore, category_id: str) -> Category | None:
    record = await store.get(CATEGORIES, category_id)
    return Category.model_validate(record) if record else None


async def list_categories(store: LibraryStore, *, prebuilt: bool | None = None) -> list[Category]:
    if prebuilt is None:
        records = await store.list_all(CATEGORIES)
    else:
        records = await store.list_by_index(CATEGORIES, "isPrebuilt", prebuilt)
    return [Category.model_validate(r) for r in records]


async def save_category(store: LibraryStore, category: Category | Mapping[str, Any]) -> Category:
    if not isinstance(category, Category):
        category = parse_category(category)
    result = validate_category(category)
    if not result.is_valid:
        raise ValidationError(f"Invalid category '{category.id}'", result.errors)
    await store.put(CATEGORIES, category.to_record())
    return category


async def delete_category(store: LibraryStore, category_id: str, *, force: bool = False) -> list[str]:
    """Delete a category. Its templates are kept; the dangling references come back as warnings."""
    category = await get_category(store, category_id)
    if category is None:
        raise NotFoundError(f"Category '{category_id}' not found")
    if category.is_prebuilt and not force:
        raise ConflictError(f"Cannot delete pre-built category '{category.name}'")

    await store.delete(CATEGORIES, category_id)
    log.info("Deleted category %s", category_id)

    orphans = await store.list_by_index(TEMPLATES, "category", category_id)
    if not orphans:
        return []
    log.warning("%d templates still reference deleted category %s", len(orphans), category_id)
    return [f"{len(orphans)} templates still reference deleted category '{category_id}'"]


async def recount_categories(store: LibraryStore, category_ids: Iterable[str] | None = None) -> dict[str, int]:
    """Recompute templateCount from the stored templates.

    Only categories whose count changed are written. Returns the fresh count of
    every category looked at.
    """
    if category_ids is None:
        records = await store.list_all(CATEGORIES)
    else:
        found = await asyncio.gather(*(store.get(CATEGORIES, cid) for cid in dict.fromkeys(category_ids)))
        records = [r for r in found if r]

    async def _recount(record: dict[str, Any]) -> tuple[str, int]:
        count = len(await store.list_by_index(TEMPLATES, "category", record["id"]))
        if record.get("templateCount") != count:
            await store.put(CATEGORIES, {**record, "templateCount": count})
        return record["id"], count

    return dict(await asyncio.gather(*(_recount(r) for r in records)))


# Templates

async def get_template(store: LibraryStore, template_id: str) -> Template | None:
    record = await store.get(TEMPLATES, template_id)
    return Template.model_validate(record) if record else None


async def list_templates(store: LibraryStore, category_id: str | None = None) -> list[Template]:
    if category_id is None:
        records = await store.list_all(TEMPLATES)
    else:
        records = await store.list_by_index(TEMPLATES, "category", category_id)
    return [Template.model_validate(r) for r in records]


async def save_template(store: LibraryStore, template: Template | Mapping[str, Any]) -> Template:
    if not isinstance(template, Template):
        template = parse_template(template)
    result = validate_template(template)
    if not result.is_valid:
        raise ValidationError(f"Invalid template '{template.id}'", result.errors)

    previous = await store.get(TEMPLATES, template.id)
    await store.put(TEMPLATES, template.to_record())

    touched = {template.category}
    if previous and previous.get("category"):
        touched.add(previous["category"])
    await recount_categories(store, touched)
    return template


async def delete_template(store: LibraryStore, template_id: str) -> Template:
    template = await get_template(store, template_id)
    if template is None:
        raise NotFoundError(f"Template '{template_id}' not found")
    await store.delete(TEMPLATES, template_id)
    await recount_categories(store, [template.category])
    return template


async def record_template_usage(store: LibraryStore, template_id: str) -> Template:
    template = await get_template(store, template_id)
    if template is None:
        raise NotFoundError(f"Template '{template_id}' not found")
    used = template.model_copy(update={"usage_count": template.usage_count + 1, "updated_at": now_iso()})
    await store.put(TEMPLATES, used.to_record())
    return used


# Key-value area

async def get_settings(store: LibraryStore) -> Settings:
    value = await store.get_value(SETTINGS_KEY)
    return parse_settings(value) if value else Settings()


async def save_settings(store: LibraryStore, settings: Settings | Mapping[str, Any]) -> Settings:
    if not isinstance(settings, Settings):
        settings = parse_settings(settings)
    await store.set_values({SETTINGS_KEY: settings.to_record()})
    return settings


async def get_license(store: LibraryStore) -> License:
    value = await store.get_value(LICENSE_KEY)
    return parse_license(value) if value else License()


async def get_imported_packs(store: LibraryStore) -> list[dict[str, Any]]:
    """Metadata of every ad pack imported so far, oldest first."""
    return list(await store.get_value(AD_PACK_METADATA_KEY) or [])
