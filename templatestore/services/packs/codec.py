"""Exchange document codec.

Two document shapes are accepted:
- category pack: {name, version, category, templates[], metadata?}
- ad pack: {id, name, niche, version, author, description, createdAt, categories[], metadata}

A document is accepted whole or not at all: bad encoding, bad JSON or an
unknown shape raise ParseError, any structural violation raises
ValidationError listing every reason.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping

from ...env_settings import EnvSettings, get_env
from ...errors import ParseError
from ...utils import generate_id, now_iso
from ..library.schema import (
    AdPack,
    AdPackCategory,
    AdPackTemplate,
    Category,
    CategoryPack,
    PackCategory,
    PackDocument,
    PackTemplate,
    Template,
)
from ..library.validator import parse_ad_pack, parse_category_pack

log = logging.getLogger(__name__)

EXPORTED_BY = "templatestore"
CATEGORY_PACK_VERSION = "1.0"


def _decode(raw: bytes | str, max_bytes: int) -> Any:
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    if len(raw) > max_bytes:
        raise ParseError(f"Pack is too large ({len(raw)} bytes, limit {max_bytes})")
    try:
        return json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ParseError("Pack is not valid UTF-8 text", details=str(e)) from e
    except json.JSONDecodeError as e:
        raise ParseError("Pack is not valid JSON", details=str(e)) from e


def pack_kind(data: Mapping[str, Any]) -> str:
    if isinstance(data.get("categories"), list):
        return "ad_pack"
    if "category" in data and "templates" in data:
        return "category_pack"
    raise ParseError("Unrecognized pack format: expected a category pack or an ad pack")


def parse_pack(raw: bytes | str | Mapping[str, Any], *, env: EnvSettings | None = None) -> PackDocument:
    """Decode and validate an exchange document."""
    env = env or get_env()
    data = raw if isinstance(raw, Mapping) else _decode(raw, env.max_pack_bytes)
    if not isinstance(data, Mapping):
        raise ParseError("Pack must be a JSON object")

    if pack_kind(data) == "category_pack":
        pack = parse_category_pack(data)
        log.info("Parsed category pack '%s' (%d templates)", pack.name, len(pack.templates))
        return pack

    data = dict(data)
    if not data.get("id"):
        data["id"] = generate_id("pack")
    pack = parse_ad_pack(data)
    if "metadata" not in data:
        pack = pack.with_updated_metadata()
    log.info(
        "Parsed ad pack '%s' (%d categories, %d templates)",
        pack.name, len(pack.categories), sum(len(c.templates) for c in pack.categories),
    )
    return pack


def serialize_category_pack(
    category: Category,
    templates: Iterable[Template],
    *,
    name: str | None = None,
    version: str = CATEGORY_PACK_VERSION,
    remove_internal_fields: bool = True,
    original_template_count: int | None = None,
    now: str | None = None,
) -> CategoryPack:
    """Project a category and its templates into a category pack."""
    items = []
    for t in templates:
        fields: dict[str, Any] = {
            "id": t.id,
            "label": t.label,
            "category": category.id,
            "keywords": list(t.keywords),
            "body": t.body,
            "is_prebuilt": t.is_prebuilt,
        }
        if not remove_internal_fields:
            fields.update(created_at=t.created_at, updated_at=t.updated_at, usage_count=t.usage_count)
        items.append(PackTemplate(**fields))

    return CategoryPack(
        name=name or f"{category.name} Templates",
        version=version,
        category=PackCategory(id=category.id, name=category.name, description=category.description),
        templates=items,
        metadata={
            "exportedAt": now or now_iso(),
            "totalTemplates": len(items),
            "originalTemplateCount": len(items) if original_template_count is None else original_template_count,
            "exportedBy": EXPORTED_BY,
        },
    )


def serialize_ad_pack(
    groups: Iterable[tuple[Category, Iterable[Template]]],
    *,
    name: str,
    niche: str,
    version: str = "1.0.0",
    author: str = "anonymous",
    description: str = "",
    pack_id: str | None = None,
    now: str | None = None,
) -> AdPack:
    """Project (category, templates) groups into an ad pack with fresh metadata counts."""
    categories = [
        AdPackCategory(
            id=category.id,
            name=category.name,
            description=category.description,
            templates=[
                AdPackTemplate(id=t.id, title=t.label, content=t.body, keywords=list(t.keywords))
                for t in templates
            ],
        )
        for category, templates in groups
    ]
    pack = AdPack(
        id=pack_id or generate_id("pack"),
        name=name,
        niche=niche,
        version=version,
        author=author,
        description=description,
        created_at=now or now_iso(),
        categories=categories,
    )
    return pack.with_updated_metadata()


def dumps(pack: PackDocument, *, indent: int | None = 2) -> str:
    return json.dumps(pack.to_record(), ensure_ascii=False, indent=indent)
