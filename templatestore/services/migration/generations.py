"""Store shapes per schema generation and the conversions between them.

Each generation is its own frozen type. `upgrade_to_legacy` (0 -> 1) and
`upgrade_to_current` (1 -> 2) are pure and total: they copy records instead of
mutating them, and running either one on its own output changes nothing.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping

from ...utils import now_iso
from ..library.schema import DEFAULT_CATEGORY_ID, default_settings

# template fields dropped by 0 -> 1
_LEGACY_TEMPLATE_FIELDS = ("variants", "verticals")


@dataclass(frozen=True)
class StoreState:
    generation: ClassVar[int]

    templates: tuple[dict[str, Any], ...] = ()
    categories: tuple[dict[str, Any], ...] = ()
    settings: dict[str, Any] | None = None
    keyword_stats: dict[str, Any] | None = None
    ad_pack_metadata: list[dict[str, Any]] | None = None


@dataclass(frozen=True)
class FreshState(StoreState):
    """Generation 0: nothing initialized yet, templates may still carry variants."""

    generation: ClassVar[int] = 0


@dataclass(frozen=True)
class LegacyState(StoreState):
    """Generation 1: one record per template, settings without onboarding fields."""

    generation: ClassVar[int] = 1


@dataclass(frozen=True)
class CurrentState(StoreState):
    """Generation 2: settings carry onboarding/AI/affiliate fields, collections exist."""

    generation: ClassVar[int] = 2


STATE_TYPES: dict[int, type[StoreState]] = {
    FreshState.generation: FreshState,
    LegacyState.generation: LegacyState,
    CurrentState.generation: CurrentState,
}


def state_for(generation: int, **fields: Any) -> StoreState:
    return STATE_TYPES[generation](**fields)


def _normalize_template(record: Mapping[str, Any], now: str) -> dict[str, Any]:
    out = {k: copy.deepcopy(v) for k, v in record.items() if k not in _LEGACY_TEMPLATE_FIELDS}

    if "body" not in out and "template" in out:
        out["body"] = out.pop("template")
    if not out.get("category"):
        out["category"] = DEFAULT_CATEGORY_ID
    if not isinstance(out.get("keywords"), list):
        out["keywords"] = []
    if not isinstance(out.get("isPrebuilt"), bool):
        out["isPrebuilt"] = bool(out.get("isPrebuilt"))
    if not isinstance(out.get("usageCount"), int) or out["usageCount"] < 0:
        out["usageCount"] = 0
    out.setdefault("createdAt", now)
    out.setdefault("updatedAt", out["createdAt"])
    return out


def _variant_siblings(parent: dict[str, Any], variants: Any) -> list[dict[str, Any]]:
    if not isinstance(variants, list):
        return []
    siblings = []
    for index, text in enumerate(variants, start=1):
        if not isinstance(text, str) or not text.strip():
            continue
        siblings.append({
            **copy.deepcopy(parent),
            "id": f"{parent['id']}_variant_{index}",
            "label": f"{parent.get('label', '')} (Variant {index})",
            "body": text,
            "usageCount": 0,
        })
    return siblings


def upgrade_to_legacy(state: StoreState, *, now: str | None = None) -> LegacyState:
    """0 -> 1: split every template with variants into independent templates.

    Sibling ids are `{parentId}_variant_{n}` (1-based). A sibling id that already
    exists in the input is left alone, so re-running after a partial write is safe.
    """
    now = now or now_iso()
    existing_ids = {t.get("id") for t in state.templates}

    templates: list[dict[str, Any]] = []
    for record in state.templates:
        parent = _normalize_template(record, now)
        templates.append(parent)
        templates.extend(
            s for s in _variant_siblings(parent, record.get("variants"))
            if s["id"] not in existing_ids
        )

    return LegacyState(
        templates=tuple(templates),
        categories=tuple(copy.deepcopy(c) for c in state.categories),
        settings=copy.deepcopy(state.settings),
        keyword_stats=copy.deepcopy(state.keyword_stats),
        ad_pack_metadata=copy.deepcopy(state.ad_pack_metadata),
    )


def _fill_missing(defaults: Mapping[str, Any], current: Mapping[str, Any]) -> dict[str, Any]:
    """Add default keys absent from current; existing values are never replaced."""
    out = copy.deepcopy(dict(current))
    for key, value in defaults.items():
        if key not in out:
            out[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(out[key], dict):
            out[key] = _fill_missing(value, out[key])
    return out


def upgrade_to_current(state: StoreState, *, now: str | None = None) -> CurrentState:
    """1 -> 2: additive only.

    Existing settings gain the new fields with onboarding marked completed, since
    those users are already set up. Missing settings start from defaults with
    onboarding pending. Templates get the same field normalization as 0 -> 1,
    so generation 1 records still holding their text under `template` gain `body`.
    """
    now = now or now_iso()
    if state.settings is None:
        settings = default_settings(onboarding_completed=False)
    else:
        settings = _fill_missing(default_settings(onboarding_completed=True), state.settings)

    return CurrentState(
        templates=tuple(_normalize_template(t, now) for t in state.templates),
        categories=tuple(copy.deepcopy(c) for c in state.categories),
        settings=settings,
        keyword_stats=copy.deepcopy(state.keyword_stats) if state.keyword_stats is not None else {},
        ad_pack_metadata=copy.deepcopy(state.ad_pack_metadata) if state.ad_pack_metadata is not None else [],
    )
