"""Whole-library backup and restore.

A backup is a JSON document `{version, createdAt, data}` where `data` holds
templates, categories, settings, license, keywordStats and adPackMetadata.
Restoring migrates the data from the backup's version to the current shape
first, so backups taken on older generations stay usable.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..errors import LibraryError, ParseError
from ..store import (
    AD_PACK_METADATA_KEY,
    CATEGORIES,
    KEYWORD_STATS_KEY,
    LICENSE_KEY,
    LibraryStore,
    SETTINGS_KEY,
    STORAGE_VERSION_KEY,
    TEMPLATES,
)
from ..utils import now_iso
from .library.schema import CURRENT_GENERATION
from .library.storage import recount_categories
from .library.validator import validate_category, validate_license, validate_settings, validate_template
from .migration import SchemaMigrator, state_for

log = logging.getLogger(__name__)

SECRET_SETTINGS_FIELDS = ("aiKeyEncrypted",)


@dataclass
class RestoreResult:
    from_version: int
    templates_restored: int = 0
    categories_restored: int = 0
    settings_restored: bool = False
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "fromVersion": self.from_version,
            "templatesRestored": self.templates_restored,
            "categoriesRestored": self.categories_restored,
            "settingsRestored": self.settings_restored,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


async def create_backup(store: LibraryStore, *, include_secrets: bool = False) -> dict[str, Any]:
    """Snapshot the whole library. Encrypted secrets are blanked unless asked for."""
    templates, categories, values = await asyncio.gather(
        store.list_all(TEMPLATES),
        store.list_all(CATEGORIES),
        store.get_values([SETTINGS_KEY, LICENSE_KEY, KEYWORD_STATS_KEY, AD_PACK_METADATA_KEY]),
    )

    settings = values.get(SETTINGS_KEY)
    if settings and not include_secrets:
        settings = {**settings, **{k: "" for k in SECRET_SETTINGS_FIELDS if k in settings}}

    return {
        "version": CURRENT_GENERATION,
        "createdAt": now_iso(),
        "data": {
            "templates": templates,
            "categories": categories,
            "settings": settings,
            "license": values.get(LICENSE_KEY),
            "keywordStats": values.get(KEYWORD_STATS_KEY, {}),
            "adPackMetadata": values.get(AD_PACK_METADATA_KEY, []),
        },
    }


def _load_backup(raw: bytes | str | Mapping[str, Any]) -> tuple[int, Mapping[str, Any]]:
    if isinstance(raw, Mapping):
        payload = raw
    else:
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            payload = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError("Backup is not valid JSON", details=str(e)) from e

    if not isinstance(payload, Mapping) or not isinstance(payload.get("data"), Mapping):
        raise ParseError("Backup is missing its data section")

    version = payload.get("version") or 0
    if not isinstance(version, int) or version < 0:
        raise ParseError(f"Backup version must be a non-negative integer, got {version!r}")
    if version > CURRENT_GENERATION:
        raise ParseError(f"Backup version {version} is newer than supported version {CURRENT_GENERATION}")
    return version, payload["data"]


def _records(value: Any) -> tuple[dict[str, Any], ...]:
    if not isinstance(value, list):
        return ()
    return tuple(r for r in value if isinstance(r, dict))


async def restore_backup(
    store: LibraryStore,
    raw: bytes | str | Mapping[str, Any],
    *,
    clear_existing: bool = False,
) -> RestoreResult:
    """Restore a backup over the current library.

    Invalid templates and categories are skipped with a warning; per-record
    write failures are collected as errors.
    """
    version, data = _load_backup(raw)
    result = RestoreResult(from_version=version)

    state = state_for(
        version,
        templates=_records(data.get("templates")),
        categories=_records(data.get("categories")),
        settings=data.get("settings") if isinstance(data.get("settings"), dict) else None,
        keyword_stats=data.get("keywordStats") if isinstance(data.get("keywordStats"), dict) else None,
        ad_pack_metadata=data.get("adPackMetadata") if isinstance(data.get("adPackMetadata"), list) else None,
    )
    state = SchemaMigrator().migrate(state, version)

    categories = []
    for record in state.categories:
        check = validate_category(record)
        if check.is_valid:
            categories.append(record)
        else:
            result.warnings.append(f"Skipped invalid category '{record.get('id')}': {'; '.join(check.errors)}")

    templates = []
    for record in state.templates:
        check = validate_template(record)
        if check.is_valid:
            templates.append(record)
        else:
            result.warnings.append(f"Skipped invalid template '{record.get('id')}': {'; '.join(check.errors)}")

    if clear_existing:
        existing_templates, existing_categories = await asyncio.gather(
            store.list_all(TEMPLATES), store.list_all(CATEGORIES)
        )
        await asyncio.gather(*(store.delete(TEMPLATES, r["id"]) for r in existing_templates))
        await asyncio.gather(*(store.delete(CATEGORIES, r["id"]) for r in existing_categories))

    async def _put(store_name: str, record: dict[str, Any]) -> bool:
        try:
            await store.put(store_name, record)
            return True
        except LibraryError as e:
            log.warning("Failed to restore %s record %s: %s", store_name, record.get("id"), e.message)
            result.errors.append(f"Failed to restore {store_name} record '{record.get('id')}': {e.message}")
            return False

    written = await asyncio.gather(*(_put(CATEGORIES, r) for r in categories))
    result.categories_restored = sum(written)
    written = await asyncio.gather(*(_put(TEMPLATES, r) for r in templates))
    result.templates_restored = sum(written)

    values: dict[str, Any] = {
        KEYWORD_STATS_KEY: state.keyword_stats or {},
        AD_PACK_METADATA_KEY: state.ad_pack_metadata or [],
    }
    if state.settings is not None:
        settings_check = validate_settings(state.settings)
        if settings_check.is_valid:
            values[SETTINGS_KEY] = await _keep_current_secrets(store, state.settings)
            result.settings_restored = True
        else:
            result.warnings.append(f"Settings were not restored: {'; '.join(settings_check.errors)}")

    license_record = data.get("license")
    if license_record:
        license_check = validate_license(license_record)
        if license_check.is_valid:
            values[LICENSE_KEY] = license_record
        else:
            result.warnings.append(f"License was not restored: {'; '.join(license_check.errors)}")

    await store.set_values(values)
    await recount_categories(store)
    await store.set_values({STORAGE_VERSION_KEY: CURRENT_GENERATION})

    log.info(
        "Restored backup (version %s): %d categories, %d templates, %d warnings, %d errors",
        version, result.categories_restored, result.templates_restored, len(result.warnings), len(result.errors),
    )
    return result


async def _keep_current_secrets(store: LibraryStore, settings: dict[str, Any]) -> dict[str, Any]:
    """Blanked secrets in a backup do not wipe the secrets already stored."""
    current = await store.get_value(SETTINGS_KEY) or {}
    kept = {k: current[k] for k in SECRET_SETTINGS_FIELDS if not settings.get(k) and current.get(k)}
    return {**settings, **kept}
