from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from ...errors import NotFoundError, ValidationError
from ...store import LibraryStore
from ...utils import slugify
from ..library.schema import AdPack, Category, CategoryPack, PackDocument
from ..library.storage import get_category, list_categories, list_templates
from ..library.validator import validate_ad_pack
from .codec import CATEGORY_PACK_VERSION, dumps, serialize_ad_pack, serialize_category_pack

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportOptions:
    exclude_prebuilt: bool = False
    remove_internal_fields: bool = True
    allow_empty: bool = False
    pack_name: str | None = None
    version: str = CATEGORY_PACK_VERSION


@dataclass(frozen=True)
class AdPackInfo:
    name: str
    niche: str
    version: str = "1.0.0"
    author: str = "anonymous"
    description: str = ""


@dataclass(frozen=True)
class PackFile:
    filename: str
    content: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {"filename": self.filename, "content": self.content, "size": self.size}


@dataclass(frozen=True)
class ExportableCategory:
    category: Category
    total_templates: int
    custom_templates: int

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.category.to_record(),
            "totalTemplates": self.total_templates,
            "customTemplates": self.custom_templates,
        }


async def export_category_pack(
    store: LibraryStore,
    category_id: str,
    options: ExportOptions | None = None,
) -> CategoryPack:
    options = options or ExportOptions()
    category = await get_category(store, category_id)
    if category is None:
        raise NotFoundError(f"Category '{category_id}' not found")

    templates = await list_templates(store, category_id)
    original_count = len(templates)
    if options.exclude_prebuilt:
        templates = [t for t in templates if not t.is_prebuilt]

    if not templates and not options.allow_empty:
        raise ValidationError(
            f"Category '{category.name}' has no templates to export",
            ["No templates left after filtering" if original_count else "Category is empty"],
        )

    pack = serialize_category_pack(
        category,
        templates,
        name=options.pack_name,
        version=options.version,
        remove_internal_fields=options.remove_internal_fields,
        original_template_count=original_count,
    )
    log.info("Exported category %s: %d of %d templates", category_id, len(templates), original_count)
    return pack


async def export_ad_pack(store: LibraryStore, category_ids: Iterable[str], info: AdPackInfo) -> AdPack:
    """Bundle the user's own templates of the given categories into an ad pack."""
    groups = []
    for category_id in dict.fromkeys(category_ids):
        category = await get_category(store, category_id)
        if category is None:
            raise NotFoundError(f"Category '{category_id}' not found")
        custom = [t for t in await list_templates(store, category_id) if not t.is_prebuilt]
        if custom:
            groups.append((category, custom))

    if not groups:
        raise ValidationError("Nothing to export", ["Selected categories contain no user templates"])

    pack = serialize_ad_pack(
        groups,
        name=info.name,
        niche=info.niche,
        version=info.version,
        author=info.author,
        description=info.description,
    )
    result = validate_ad_pack(pack)
    if not result.is_valid:
        raise ValidationError(f"Ad pack '{info.name}' is invalid", result.errors)

    log.info("Exported ad pack %s: %d categories, %d templates",
             pack.id, pack.metadata.total_categories, pack.metadata.total_templates)
    return pack


def generate_pack_file(pack: PackDocument, *, today: date | None = None) -> PackFile:
    """Downloadable file for a pack: `<slug>-templates-<YYYY-MM-DD>.json`."""
    base = pack.category.name if isinstance(pack, CategoryPack) else pack.name
    day = (today or date.today()).isoformat()
    content = dumps(pack)
    return PackFile(
        filename=f"{slugify(base)}-templates-{day}.json",
        content=content,
        size=len(content.encode("utf-8")),
    )


async def list_exportable_categories(
    store: LibraryStore,
    *,
    custom_only: bool = False,
    non_empty: bool = False,
    has_custom: bool = False,
) -> list[ExportableCategory]:
    categories = await list_categories(store)
    templates = await list_templates(store)
    totals = Counter(t.category for t in templates)
    customs = Counter(t.category for t in templates if not t.is_prebuilt)

    out = []
    for c in sorted(categories, key=lambda c: c.name.casefold()):
        item = ExportableCategory(c, totals[c.id], customs[c.id])
        if custom_only and c.is_prebuilt:
            continue
        if non_empty and not item.total_templates:
            continue
        if has_custom and not item.custom_templates:
            continue
        out.append(item)
    return out
