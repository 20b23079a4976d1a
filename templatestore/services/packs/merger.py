"""Reconcile an incoming pack against the library.

Import runs in two phases. `plan_import` is pure: it resolves every incoming
category and template against a snapshot and decides create / update / skip,
raising ConflictError before anything is written when a pre-built category
would be overwritten. `apply_import` executes a plan. Per-template write
failures are collected on the result and do not stop the rest of the batch.

Duplicate detection:
- category packs match categories and templates by id
- ad packs match categories by case-insensitive name and templates by
  case-insensitive label within the resolved category; ad-pack categories
  whose names differ only by case are folded into one
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from ...env_settings import EnvSettings, get_env
from ...errors import ConflictError, LibraryError
from ...store import AD_PACK_METADATA_KEY, CATEGORIES, LibraryStore, TEMPLATES
from ...utils import generate_id, now_iso
from ..library.schema import AdPack, Category, CategoryPack, PackDocument, Template
from ..library.storage import LibrarySnapshot, load_snapshot, recount_categories
from .codec import parse_pack

log = logging.getLogger(__name__)

Strategy = Literal["merge", "replace"]
STRATEGIES = ("merge", "replace")

PREBUILT_TARGET_WARNING = "Importing into a pre-built category may cause conflicts"
LARGE_PACK_WARNING = "Large template pack may take some time to import"
FEW_KEYWORDS_WARNING = "Templates have few keywords which may affect matching accuracy"


@dataclass(frozen=True)
class ImportOptions:
    strategy: Strategy = "merge"
    allow_prebuilt_overwrite: bool = False
    update_existing: bool = False

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown import strategy: {self.strategy!r}")


@dataclass(frozen=True)
class _IncomingTemplate:
    id: str
    label: str
    keywords: tuple[str, ...]
    body: str


@dataclass(frozen=True)
class _IncomingCategory:
    id: str
    name: str
    description: str
    templates: tuple[_IncomingTemplate, ...]


@dataclass(frozen=True)
class TemplateAction:
    action: Literal["create", "update", "skip"]
    record: dict[str, Any]
    reason: str = ""


@dataclass(frozen=True)
class CategoryPlan:
    action: Literal["create", "reuse"]
    record: dict[str, Any]
    templates: tuple[TemplateAction, ...]

    @property
    def category_id(self) -> str:
        return self.record["id"]

    @property
    def is_prebuilt(self) -> bool:
        return bool(self.record.get("isPrebuilt"))


@dataclass
class _ResolvedCategory:
    action: Literal["create", "reuse"]
    record: dict[str, Any]
    labels: dict[str, Template]
    seen_labels: set[str] = field(default_factory=set)
    actions: list[TemplateAction] = field(default_factory=list)


@dataclass(frozen=True)
class ImportPlan:
    kind: Literal["category_pack", "ad_pack"]
    pack_name: str
    options: ImportOptions
    categories: tuple[CategoryPlan, ...]
    purge_templates: tuple[str, ...] = ()
    purge_categories: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    pack_info: dict[str, Any] | None = None
    # categories that updated templates move out of
    source_categories: tuple[str, ...] = ()

    def count(self, action: str) -> int:
        return sum(1 for c in self.categories for t in c.templates if t.action == action)


@dataclass
class ImportResult:
    categories_created: int = 0
    categories_skipped: int = 0
    templates_imported: int = 0
    templates_updated: int = 0
    templates_skipped: int = 0
    categories_deleted: int = 0
    templates_deleted: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "categoriesCreated": self.categories_created,
            "categoriesSkipped": self.categories_skipped,
            "templatesImported": self.templates_imported,
            "templatesUpdated": self.templates_updated,
            "templatesSkipped": self.templates_skipped,
            "categoriesDeleted": self.categories_deleted,
            "templatesDeleted": self.templates_deleted,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class ImportPreview:
    kind: str
    pack_name: str
    strategy: str
    categories_new: int
    categories_existing: int
    templates_new: int
    templates_duplicate: int
    templates_to_update: int
    templates_to_delete: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "packName": self.pack_name,
            "strategy": self.strategy,
            "categoriesNew": self.categories_new,
            "categoriesExisting": self.categories_existing,
            "templatesNew": self.templates_new,
            "templatesDuplicate": self.templates_duplicate,
            "templatesToUpdate": self.templates_to_update,
            "templatesToDelete": self.templates_to_delete,
            "warnings": list(self.warnings),
        }


def _incoming(pack: PackDocument) -> list[_IncomingCategory]:
    if isinstance(pack, AdPack):
        return [
            _IncomingCategory(
                id=c.id,
                name=c.name,
                description=c.description,
                templates=tuple(_IncomingTemplate(t.id, t.title, tuple(t.keywords), t.content) for t in c.templates),
            )
            for c in pack.categories
        ]
    return [
        _IncomingCategory(
            id=pack.category.id,
            name=pack.category.name,
            description=pack.category.description,
            templates=tuple(_IncomingTemplate(t.id, t.label, tuple(t.keywords), t.body) for t in pack.templates),
        )
    ]


def _new_template(item: _IncomingTemplate, template_id: str, category_id: str, now: str) -> dict[str, Any]:
    return Template(
        id=template_id,
        label=item.label,
        category=category_id,
        keywords=list(item.keywords),
        body=item.body,
        is_prebuilt=False,
        created_at=now,
        updated_at=now,
        usage_count=0,
    ).to_record()


def _updated_template(existing: Template, item: _IncomingTemplate, category_id: str, now: str) -> dict[str, Any]:
    return existing.model_copy(update={
        "label": item.label,
        "category": category_id,
        "keywords": list(item.keywords),
        "body": item.body,
        "updated_at": now,
    }).to_record()


def _resolve_category(
    snapshot: LibrarySnapshot,
    incoming: _IncomingCategory,
    *,
    by_name: bool,
    options: ImportOptions,
    strict: bool,
    warnings: list[str],
    now: str,
) -> _ResolvedCategory:
    existing = snapshot.category_by_name(incoming.name) if by_name else snapshot.category_by_id(incoming.id)

    if existing is not None and existing.is_prebuilt and not options.allow_prebuilt_overwrite:
        message = (
            f"Category '{existing.name}' is pre-built and cannot be imported into "
            f"without allowing pre-built overwrite"
        )
        if strict:
            raise ConflictError(message)
        warnings.append(message)

    if existing is not None:
        current = snapshot.templates_in(existing.id)
        return _ResolvedCategory("reuse", existing.to_record(), {t.label.strip().casefold(): t for t in current})

    record = Category(
        id=generate_id("cat") if by_name else incoming.id,
        name=incoming.name,
        description=incoming.description,
        is_prebuilt=False,
        template_count=0,
        created_at=now,
    ).to_record()
    return _ResolvedCategory("create", record, {})


def plan_import(
    snapshot: LibrarySnapshot,
    pack: PackDocument,
    options: ImportOptions | None = None,
    *,
    strict: bool = True,
    now: str | None = None,
) -> ImportPlan:
    """Decide what an import would do. Never writes.

    With `strict` (the default) a pre-built conflict raises ConflictError;
    otherwise it is reported as a warning, which is what previews use.
    """
    options = options or ImportOptions()
    now = now or now_iso()
    by_name = isinstance(pack, AdPack)
    warnings: list[str] = []

    purge_templates: tuple[str, ...] = ()
    purge_categories: tuple[str, ...] = ()
    if options.strategy == "replace":
        purge_templates = tuple(t.id for t in snapshot.templates if not t.is_prebuilt)
        purge_categories = tuple(c.id for c in snapshot.categories if not c.is_prebuilt)
        # resolution only sees what survives the purge
        snapshot = LibrarySnapshot(
            categories=tuple(c for c in snapshot.categories if c.is_prebuilt),
            templates=tuple(t for t in snapshot.templates if t.is_prebuilt),
        )

    seen_template_ids: set[str] = set()
    source_categories: dict[str, None] = {}
    # incoming name (ad packs) or id (category packs) -> resolution
    resolved: dict[str, _ResolvedCategory] = {}
    for incoming in _incoming(pack):
        category_key = incoming.name.strip().casefold() if by_name else incoming.id
        target = resolved.get(category_key)
        if target is None:
            target = resolved[category_key] = _resolve_category(
                snapshot, incoming, by_name=by_name, options=options, strict=strict, warnings=warnings, now=now
            )

        category_id = target.record["id"]
        for item in incoming.templates:
            if by_name:
                key = item.label.strip().casefold()
                seen, match = key in target.seen_labels, target.labels.get(key)
                target.seen_labels.add(key)
            else:
                seen, match = item.id in seen_template_ids, snapshot.template_by_id(item.id)
                seen_template_ids.add(item.id)

            if seen:
                target.actions.append(TemplateAction("skip", {"id": item.id, "label": item.label}, "duplicate in pack"))
            elif match is None:
                record = _new_template(item, generate_id("tpl") if by_name else item.id, category_id, now)
                target.actions.append(TemplateAction("create", record))
            elif options.strategy == "merge" and options.update_existing:
                if match.is_prebuilt and not options.allow_prebuilt_overwrite:
                    warnings.append(f"Template '{match.label}' is pre-built and was not updated")
                    target.actions.append(TemplateAction("skip", match.to_record(), "pre-built"))
                else:
                    target.actions.append(TemplateAction("update", _updated_template(match, item, category_id, now)))
                    if match.category != category_id:
                        source_categories[match.category] = None
            else:
                target.actions.append(TemplateAction("skip", match.to_record(), "already exists"))

    plans = [CategoryPlan(r.action, r.record, tuple(r.actions)) for r in resolved.values()]

    pack_info = None
    if isinstance(pack, AdPack):
        pack_info = {"packId": pack.id, "name": pack.name, "niche": pack.niche, "version": pack.version}

    return ImportPlan(
        kind="ad_pack" if by_name else "category_pack",
        pack_name=pack.name,
        options=options,
        categories=tuple(plans),
        purge_templates=purge_templates,
        purge_categories=purge_categories,
        warnings=tuple(warnings),
        pack_info=pack_info,
        source_categories=tuple(source_categories),
    )


async def _purge(store: LibraryStore, plan: ImportPlan, result: ImportResult) -> None:
    await asyncio.gather(*(store.delete(TEMPLATES, tid) for tid in plan.purge_templates))
    await asyncio.gather(*(store.delete(CATEGORIES, cid) for cid in plan.purge_categories))
    result.templates_deleted = len(plan.purge_templates)
    result.categories_deleted = len(plan.purge_categories)
    log.info(
        "Replace import removed %d user templates and %d user categories",
        result.templates_deleted, result.categories_deleted,
    )


async def _apply_template(store: LibraryStore, action: TemplateAction, result: ImportResult) -> None:
    if action.action == "skip":
        result.templates_skipped += 1
        return
    try:
        await store.put(TEMPLATES, action.record)
    except LibraryError as e:
        log.warning("Failed to import template %s: %s", action.record.get("id"), e.message)
        result.errors.append(f"Failed to import template '{action.record.get('label')}': {e.message}")
        return
    result.templates_imported += 1
    if action.action == "update":
        result.templates_updated += 1


async def _apply_category(store: LibraryStore, plan: CategoryPlan, result: ImportResult) -> None:
    if plan.action == "create":
        try:
            await store.put(CATEGORIES, plan.record)
        except LibraryError as e:
            log.warning("Failed to create category %s: %s", plan.category_id, e.message)
            result.errors.append(f"Failed to create category '{plan.record.get('name')}': {e.message}")
            return
        result.categories_created += 1
    else:
        result.categories_skipped += 1

    # the category exists from here on; its templates are independent of each other
    await asyncio.gather(*(_apply_template(store, t, result) for t in plan.templates))


async def apply_import(store: LibraryStore, plan: ImportPlan) -> ImportResult:
    result = ImportResult(warnings=list(plan.warnings))

    if plan.purge_templates or plan.purge_categories:
        await _purge(store, plan, result)

    await asyncio.gather(*(_apply_category(store, c, result) for c in plan.categories))

    try:
        await recount_categories(store, [*(c.category_id for c in plan.categories), *plan.source_categories])
    except LibraryError as e:
        log.warning("Failed to recount categories after import: %s", e.message)
        result.errors.append(f"Failed to update category counts: {e.message}")

    if plan.pack_info is not None:
        await _record_pack(store, plan, result)

    log.info(
        "Imported '%s' (%s): %d templates imported, %d skipped, %d categories created, %d errors",
        plan.pack_name, plan.options.strategy, result.templates_imported,
        result.templates_skipped, result.categories_created, len(result.errors),
    )
    return result


async def _record_pack(store: LibraryStore, plan: ImportPlan, result: ImportResult) -> None:
    entry = {
        **plan.pack_info,
        "importedAt": now_iso(),
        "categoriesImported": result.categories_created,
        "templatesImported": result.templates_imported,
    }
    try:
        history = list(await store.get_value(AD_PACK_METADATA_KEY) or [])
        history.append(entry)
        await store.set_values({AD_PACK_METADATA_KEY: history})
    except LibraryError as e:
        log.warning("Failed to record imported pack %s: %s", entry["packId"], e.message)
        result.errors.append(f"Failed to record pack metadata: {e.message}")


async def import_pack(
    store: LibraryStore,
    pack: PackDocument | bytes | str | Mapping[str, Any],
    options: ImportOptions | None = None,
    *,
    env: EnvSettings | None = None,
) -> ImportResult:
    """Parse (if needed), plan against the current library, apply."""
    if not isinstance(pack, (CategoryPack, AdPack)):
        pack = parse_pack(pack, env=env)
    snapshot = await load_snapshot(store)
    plan = plan_import(snapshot, pack, options)
    return await apply_import(store, plan)


async def preview_import(
    store: LibraryStore,
    pack: PackDocument | bytes | str | Mapping[str, Any],
    options: ImportOptions | None = None,
    *,
    env: EnvSettings | None = None,
) -> ImportPreview:
    """What import_pack would do, plus advisory warnings. Never writes."""
    env = env or get_env()
    options = options or ImportOptions()
    if not isinstance(pack, (CategoryPack, AdPack)):
        pack = parse_pack(pack, env=env)
    plan = plan_import(await load_snapshot(store), pack, options, strict=False)

    warnings = list(plan.warnings)
    if any(c.is_prebuilt for c in plan.categories):
        warnings.append(PREBUILT_TARGET_WARNING)

    duplicates = plan.count("skip") + plan.count("update")
    if duplicates and options.update_existing:
        warnings.append(f"{duplicates} templates already exist and will be updated")
    elif duplicates:
        warnings.append(f"{duplicates} templates already exist and will be skipped by default")

    incoming = [t for c in _incoming(pack) for t in c.templates]
    if len(incoming) > env.large_pack_threshold:
        warnings.append(LARGE_PACK_WARNING)
    if incoming and sum(len(t.keywords) for t in incoming) / len(incoming) < env.min_average_keywords:
        warnings.append(FEW_KEYWORDS_WARNING)

    return ImportPreview(
        kind=plan.kind,
        pack_name=plan.pack_name,
        strategy=options.strategy,
        categories_new=sum(1 for c in plan.categories if c.action == "create"),
        categories_existing=sum(1 for c in plan.categories if c.action == "reuse"),
        templates_new=plan.count("create"),
        templates_duplicate=duplicates,
        templates_to_update=plan.count("update"),
        templates_to_delete=len(plan.purge_templates),
        warnings=warnings,
    )
