"""Structural validation for library entities.

Every entity kind is described by a rule table (field path -> checks) plus a
few cross-field checks, consumed by one generic runner. Validators never
raise and never mutate their input; `parse_*` wraps them into fallible
constructors returning immutable values from schema.py.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ...errors import ValidationError
from ...utils import is_iso_timestamp, sanitize_string
from .schema import (
    AI_PROVIDERS,
    AdPack,
    Category,
    CategoryPack,
    DEFAULT_CATEGORY_ID,
    KeywordStats,
    License,
    LICENSE_FEATURES,
    LICENSE_PLANS,
    LICENSE_STATUSES,
    LICENSE_TIERS,
    MAX_BODY_LENGTH,
    MAX_CATEGORY_DESCRIPTION_LENGTH,
    MAX_CATEGORY_ID_LENGTH,
    MAX_CATEGORY_NAME_LENGTH,
    MAX_KEYWORDS,
    MAX_LABEL_LENGTH,
    MAX_PACK_NAME_LENGTH,
    MAX_PACK_TEMPLATES,
    MAX_TEMPLATE_CATEGORY_LENGTH,
    Settings,
    Template,
    THEMES,
    default_settings,
)

Check = Callable[[Any], list[str]]
CrossCheck = Callable[[Mapping[str, Any]], list[str]]

_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+$")


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "errors": list(self.errors)}


# Predicates

def _is_text(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _is_http_url(v: Any) -> bool:
    if not isinstance(v, str):
        return False
    parsed = urlparse(v.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# Check factories

def _check(ok: Callable[[Any], bool], message: str) -> Check:
    def check(value: Any) -> list[str]:
        return [] if ok(value) else [message]

    return check


def _required_text(message: str) -> Check:
    return _check(_is_text, message)


def _optional_text(message: str) -> Check:
    return _check(lambda v: v is None or isinstance(v, str), message)


def _max_length(limit: int, message: str) -> Check:
    return _check(lambda v: not isinstance(v, str) or len(v) <= limit, message)


def _flag(message: str) -> Check:
    return _check(lambda v: isinstance(v, bool), message)


def _count(message: str) -> Check:
    return _check(lambda v: _is_int(v) and v >= 0, message)


def _int_between(low: int, high: int, message: str) -> Check:
    return _check(lambda v: _is_int(v) and low <= v <= high, message)


def _one_of(choices: tuple, message: str) -> Check:
    return _check(lambda v: v in choices, message)


def _timestamp(message: str) -> Check:
    return _check(lambda v: v is None or is_iso_timestamp(v), message)


def _optional_url(message: str) -> Check:
    return _check(lambda v: v is None or v == "" or _is_http_url(v), message)


def _string_list(message: str, *, max_items: int | None = None, too_many: str = "") -> Check:
    def check(value: Any) -> list[str]:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return [message]
        if max_items is not None and len(value) > max_items:
            return [too_many]
        return []

    return check


def _non_empty_list(message: str) -> Check:
    return _check(lambda v: isinstance(v, list) and len(v) > 0, message)


# Generic runner

@dataclass(frozen=True)
class _Schema:
    entity: str
    rules: Mapping[str, tuple[Check, ...]]
    cross_rules: tuple[CrossCheck, ...] = ()
    defaults: Callable[[], dict[str, Any]] = dict


def _as_mapping(entity: Any) -> Mapping[str, Any] | None:
    if isinstance(entity, BaseModel):
        return entity.model_dump(by_alias=True, exclude_none=True)
    if isinstance(entity, Mapping):
        return entity
    return None


def _with_defaults(defaults: Mapping[str, Any], data: Mapping[str, Any]) -> dict[str, Any]:
    """Overlay data on defaults; nested mappings merge, None keeps the default."""
    merged = dict(defaults)
    for key, value in data.items():
        if value is None and key in defaults:
            continue
        base = merged.get(key)
        if isinstance(base, dict) and isinstance(value, Mapping):
            merged[key] = _with_defaults(base, value)
        else:
            merged[key] = value
    return merged


def _lookup(data: Mapping[str, Any], path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _run_rules(schema: _Schema, entity: Any) -> ValidationResult:
    data = _as_mapping(entity)
    if data is None:
        return ValidationResult(False, [f"{schema.entity} must be an object"])

    merged = _with_defaults(schema.defaults(), data)
    errors: list[str] = []
    for path, checks in schema.rules.items():
        value = _lookup(merged, path)
        for check in checks:
            errors.extend(check(value))
    for rule in schema.cross_rules:
        errors.extend(rule(merged))
    return ValidationResult(not errors, errors)


# Template

def _template_defaults() -> dict[str, Any]:
    return {"category": DEFAULT_CATEGORY_ID, "keywords": [], "isPrebuilt": False, "usageCount": 0}


TEMPLATE_RULES: dict[str, tuple[Check, ...]] = {
    "id": (_required_text("Template ID is required and must be a non-empty string"),),
    "label": (
        _required_text("Template label is required and must be a non-empty string"),
        _max_length(MAX_LABEL_LENGTH, f"Template label must be {MAX_LABEL_LENGTH} characters or less"),
    ),
    "category": (
        _required_text("Template category is required and must be a non-empty string"),
        _max_length(MAX_TEMPLATE_CATEGORY_LENGTH, f"Template category must be {MAX_TEMPLATE_CATEGORY_LENGTH} characters or less"),
    ),
    "keywords": (
        _string_list("Keywords must be an array of strings", max_items=MAX_KEYWORDS, too_many=f"Template can have at most {MAX_KEYWORDS} keywords"),
    ),
    "body": (
        _required_text("Template body is required and must be a non-empty string"),
        _max_length(MAX_BODY_LENGTH, f"Template body must be {MAX_BODY_LENGTH} characters or less"),
    ),
    "isPrebuilt": (_flag("isPrebuilt must be a boolean"),),
    "createdAt": (_timestamp("Created date must be a valid ISO date string"),),
    "updatedAt": (_timestamp("Updated date must be a valid ISO date string"),),
    "usageCount": (_count("Usage count must be a non-negative number"),),
}

_TEMPLATE = _Schema("Template", TEMPLATE_RULES, defaults=_template_defaults)


# Category

def _category_defaults() -> dict[str, Any]:
    return {"description": "", "isPrebuilt": False, "templateCount": 0}


CATEGORY_RULES: dict[str, tuple[Check, ...]] = {
    "id": (
        _required_text("Category ID is required and must be a non-empty string"),
        _max_length(MAX_CATEGORY_ID_LENGTH, f"Category ID must be {MAX_CATEGORY_ID_LENGTH} characters or less"),
    ),
    "name": (
        _required_text("Category name is required and must be a non-empty string"),
        _max_length(MAX_CATEGORY_NAME_LENGTH, f"Category name must be {MAX_CATEGORY_NAME_LENGTH} characters or less"),
    ),
    "description": (
        _optional_text("Category description must be a string"),
        _max_length(MAX_CATEGORY_DESCRIPTION_LENGTH, f"Category description must be {MAX_CATEGORY_DESCRIPTION_LENGTH} characters or less"),
    ),
    "isPrebuilt": (_flag("isPrebuilt must be a boolean"),),
    "templateCount": (_count("Template count must be a non-negative number"),),
    "createdAt": (_timestamp("Created date must be a valid ISO date string"),),
}

_CATEGORY = _Schema("Category", CATEGORY_RULES, defaults=_category_defaults)


# Settings

def _check_affiliate_overrides(data: Mapping[str, Any]) -> list[str]:
    overrides = _lookup(data, "affiliateLinks.categoryOverrides")
    if not isinstance(overrides, Mapping):
        return ["Affiliate link overrides must be an object"]
    return [
        f"Affiliate link for category '{category_id}' must be a valid http(s) URL"
        for category_id, url in overrides.items()
        if not _is_http_url(url)
    ]


def _check_business_description(data: Mapping[str, Any]) -> list[str]:
    value = data.get("businessDescription")
    if not isinstance(value, str):
        return ["Business description must be a string"]
    length = len(value.strip())
    if length and not 50 <= length <= 500:
        return ["Business description must be between 50 and 500 characters"]
    return []


SETTINGS_RULES: dict[str, tuple[Check, ...]] = {
    "ui.sidebarWidth": (_int_between(200, 600, "Sidebar width must be between 200 and 600 pixels"),),
    "ui.theme": (_one_of(THEMES, 'Theme must be either "light" or "dark"'),),
    "ui.showUpgradePrompts": (_flag("Show upgrade prompts must be a boolean"),),
    "templates.maxSuggestions": (_int_between(1, 10, "Max suggestions must be between 1 and 10"),),
    "templates.enableRotation": (_flag("Enable rotation must be a boolean"),),
    "templates.preventRepetition": (_flag("Prevent repetition must be a boolean"),),
    "templates.preferredCategory": (_optional_text("Preferred category must be a string"),),
    "companyUrl": (_optional_url("Company URL must be a valid http(s) URL"),),
    "aiProvider": (_one_of(AI_PROVIDERS, 'AI provider must be either "gemini" or "openai"'),),
    "aiKeyEncrypted": (_optional_text("Encrypted AI key must be a string"),),
    "onboardingCompleted": (_flag("Onboarding completed must be a boolean"),),
    "affiliateLinks.default": (_optional_url("Default affiliate link must be a valid http(s) URL"),),
}

_SETTINGS = _Schema(
    "Settings",
    SETTINGS_RULES,
    cross_rules=(_check_business_description, _check_affiliate_overrides),
    defaults=default_settings,
)


# License

def _check_license_features(data: Mapping[str, Any]) -> list[str]:
    features = data.get("features")
    if not isinstance(features, list):
        return ["License features must be an array"]
    return [f"Unknown license feature: {f}" for f in features if f not in LICENSE_FEATURES]


LICENSE_RULES: dict[str, tuple[Check, ...]] = {
    "token": (_optional_text("License token must be a string"),),
    "status": (_one_of(LICENSE_STATUSES, "License status must be one of: " + ", ".join(LICENSE_STATUSES)),),
    "tier": (_one_of(LICENSE_TIERS, "License tier must be one of: " + ", ".join(LICENSE_TIERS)),),
    "plan": (_one_of(LICENSE_PLANS, "License plan must be monthly, yearly or null"),),
    "expiresAt": (_timestamp("Expiration date must be a valid ISO date string"),),
    "lastValidatedAt": (_timestamp("Last validated date must be a valid ISO date string"),),
    "gracePeriodEnds": (_timestamp("Grace period end must be a valid ISO date string"),),
}

_LICENSE = _Schema(
    "License",
    LICENSE_RULES,
    cross_rules=(_check_license_features,),
    defaults=lambda: {"token": "", "status": "free", "tier": "free", "plan": None, "features": []},
)


# KeywordStats

def _check_chosen_within_matches(data: Mapping[str, Any]) -> list[str]:
    chosen, matches = data.get("chosen"), data.get("matches")
    if _is_int(chosen) and _is_int(matches) and chosen > matches:
        return ["Chosen count cannot exceed matches count"]
    return []


KEYWORD_STATS_RULES: dict[str, tuple[Check, ...]] = {
    "keyword": (_required_text("Keyword is required and must be a non-empty string"),),
    "categoryId": (_required_text("Category ID is required and must be a non-empty string"),),
    "matches": (_count("Matches count must be a non-negative number"),),
    "chosen": (_count("Chosen count must be a non-negative number"),),
    "ignored": (_count("Ignored count must be a non-negative number"),),
    "score": (_check(lambda v: _is_number(v) and 0 <= v <= 1, "Score must be a number between 0 and 1"),),
    "lastUpdated": (_timestamp("Last updated must be a valid ISO date string"),),
}

_KEYWORD_STATS = _Schema(
    "Keyword stats",
    KEYWORD_STATS_RULES,
    cross_rules=(_check_chosen_within_matches,),
    defaults=lambda: {"matches": 0, "chosen": 0, "ignored": 0, "score": 0.0},
)


# AdPack

AD_PACK_TEMPLATE_RULES: dict[str, tuple[Check, ...]] = {
    "id": (_required_text("Template ID is required and must be a non-empty string"),),
    "title": (
        _required_text("Template title is required and must be a non-empty string"),
        _max_length(MAX_LABEL_LENGTH, f"Template title must be {MAX_LABEL_LENGTH} characters or less"),
    ),
    "content": (
        _required_text("Template content is required and must be a non-empty string"),
        _max_length(MAX_BODY_LENGTH, f"Template content must be {MAX_BODY_LENGTH} characters or less"),
    ),
    "keywords": (
        _string_list("Keywords must be an array of strings", max_items=MAX_KEYWORDS, too_many=f"Template can have at most {MAX_KEYWORDS} keywords"),
    ),
}

_AD_PACK_TEMPLATE = _Schema("Template", AD_PACK_TEMPLATE_RULES, defaults=lambda: {"keywords": []})


def _check_ad_pack_categories(data: Mapping[str, Any]) -> list[str]:
    categories = data.get("categories")
    if not isinstance(categories, list):
        return []

    errors: list[str] = []
    for i, category in enumerate(categories, start=1):
        if not isinstance(category, Mapping):
            errors.append(f"Category {i} must be an object")
            continue
        head = {k: category.get(k) for k in ("id", "name", "description")}
        errors.extend(f"Category {i}: {e}" for e in _run_rules(_CATEGORY, head).errors)

        templates = category.get("templates", [])
        if not isinstance(templates, list):
            errors.append(f"Category {i}: templates must be an array")
            continue
        for j, template in enumerate(templates, start=1):
            errors.extend(f"Category {i}, template {j}: {e}" for e in _run_rules(_AD_PACK_TEMPLATE, template).errors)
    return errors


AD_PACK_RULES: dict[str, tuple[Check, ...]] = {
    "id": (_required_text("Ad pack ID is required and must be a non-empty string"),),
    "name": (
        _required_text("Ad pack name is required and must be a non-empty string"),
        _max_length(MAX_PACK_NAME_LENGTH, f"Ad pack name must be {MAX_PACK_NAME_LENGTH} characters or less"),
    ),
    "niche": (_required_text("Ad pack niche is required and must be a non-empty string"),),
    "version": (_check(lambda v: isinstance(v, str) and bool(_SEMVER_RE.match(v)), "Version must follow semantic versioning (e.g. 1.0.0)"),),
    "author": (_required_text("Author is required and must be a non-empty string"),),
    "description": (_optional_text("Ad pack description must be a string"),),
    "createdAt": (_timestamp("Created date must be a valid ISO date string"),),
    "categories": (_non_empty_list("Ad pack must contain at least one category"),),
    "metadata.totalTemplates": (_count("Metadata totalTemplates must be a non-negative number"),),
    "metadata.totalCategories": (_count("Metadata totalCategories must be a non-negative number"),),
    "metadata.downloadCount": (_count("Metadata downloadCount must be a non-negative number"),),
}

_AD_PACK = _Schema(
    "Ad pack",
    AD_PACK_RULES,
    cross_rules=(_check_ad_pack_categories,),
    defaults=lambda: {
        "version": "1.0.0",
        "author": "anonymous",
        "description": "",
        "metadata": {"totalTemplates": 0, "totalCategories": 0, "downloadCount": 0},
    },
)


# Category pack

def _check_category_pack_contents(data: Mapping[str, Any]) -> list[str]:
    category = data.get("category")
    templates = data.get("templates")
    errors: list[str] = []

    pack_category_id = None
    if isinstance(category, Mapping):
        pack_category_id = category.get("id")
        errors.extend(f"Category: {e}" for e in _run_rules(_CATEGORY, category).errors)

    if not isinstance(templates, list):
        return errors
    for i, template in enumerate(templates, start=1):
        if not isinstance(template, Mapping):
            errors.append(f"Template {i} must be an object")
            continue
        prefix = f"Template {i} ({template.get('id') or 'no id'})"
        errors.extend(f"{prefix}: {e}" for e in _run_rules(_TEMPLATE, template).errors)
        if pack_category_id is not None and template.get("category") != pack_category_id:
            errors.append(
                f"{prefix}: category '{template.get('category')}' does not match pack category '{pack_category_id}'"
            )
    return errors


CATEGORY_PACK_RULES: dict[str, tuple[Check, ...]] = {
    "name": (
        _required_text("Pack name is required and must be a non-empty string"),
        _max_length(MAX_PACK_NAME_LENGTH, f"Pack name must be {MAX_PACK_NAME_LENGTH} characters or less"),
    ),
    "version": (_required_text("Pack version is required and must be a string"),),
    "category": (_check(lambda v: isinstance(v, Mapping), "Pack category must be an object"),),
    "templates": (
        _non_empty_list("Pack must contain at least one template"),
        _check(lambda v: not isinstance(v, list) or len(v) <= MAX_PACK_TEMPLATES, f"Pack cannot contain more than {MAX_PACK_TEMPLATES} templates"),
    ),
    "metadata": (_check(lambda v: v is None or isinstance(v, Mapping), "Pack metadata must be an object"),),
}

_CATEGORY_PACK = _Schema("Pack", CATEGORY_PACK_RULES, cross_rules=(_check_category_pack_contents,))


# Public API

def validate_template(template: Any) -> ValidationResult:
    return _run_rules(_TEMPLATE, template)


def validate_category(category: Any) -> ValidationResult:
    return _run_rules(_CATEGORY, category)


def validate_settings(settings: Any) -> ValidationResult:
    return _run_rules(_SETTINGS, settings)


def validate_license(license: Any) -> ValidationResult:
    return _run_rules(_LICENSE, license)


def validate_keyword_stats(stats: Any) -> ValidationResult:
    return _run_rules(_KEYWORD_STATS, stats)


def validate_ad_pack(pack: Any) -> ValidationResult:
    return _run_rules(_AD_PACK, pack)


def validate_category_pack(pack: Any) -> ValidationResult:
    """Structure of a category pack, including its nested category and every template."""
    return _run_rules(_CATEGORY_PACK, pack)


# Fallible constructors

def _parse(schema: _Schema, model: type[BaseModel], data: Any):
    result = _run_rules(schema, data)
    if not result.is_valid:
        raise ValidationError(f"Invalid {schema.entity.lower()}", result.errors)
    try:
        return model.model_validate(_with_defaults(schema.defaults(), _as_mapping(data)))
    except PydanticValidationError as e:
        reasons = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ValidationError(f"Invalid {schema.entity.lower()}", reasons) from e


def parse_template(data: Any) -> Template:
    return _parse(_TEMPLATE, Template, data)


def parse_category(data: Any) -> Category:
    return _parse(_CATEGORY, Category, data)


def parse_settings(data: Any) -> Settings:
    return _parse(_SETTINGS, Settings, data)


def parse_license(data: Any) -> License:
    return _parse(_LICENSE, License, data)


def parse_keyword_stats(data: Any) -> KeywordStats:
    return _parse(_KEYWORD_STATS, KeywordStats, data)


def parse_ad_pack(data: Any) -> AdPack:
    return _parse(_AD_PACK, AdPack, data)


def parse_category_pack(data: Any) -> CategoryPack:
    return _parse(_CATEGORY_PACK, CategoryPack, data)


# Sanitizers: return a new value, idempotent.

def _clean_keywords(keywords: list[str]) -> list[str]:
    return [k for k in (sanitize_string(k) for k in keywords) if k]


def sanitize_template(template: Template) -> Template:
    return template.model_copy(update={
        "label": sanitize_string(template.label),
        "body": sanitize_string(template.body),
        "category": template.category.strip(),
        "keywords": _clean_keywords(template.keywords),
    })


def sanitize_category(category: Category) -> Category:
    return category.model_copy(update={
        "name": sanitize_string(category.name),
        "description": sanitize_string(category.description),
    })


def sanitize_settings(settings: Settings) -> Settings:
    links = settings.affiliate_links
    return settings.model_copy(update={
        "business_description": sanitize_string(settings.business_description),
        "company_url": settings.company_url.strip(),
        "templates": settings.templates.model_copy(update={
            "preferred_category": settings.templates.preferred_category.strip(),
        }),
        "affiliate_links": links.model_copy(update={
            "default": links.default.strip(),
            "category_overrides": {k.strip(): v.strip() for k, v in links.category_overrides.items()},
        }),
    })


def sanitize_license(license: License) -> License:
    return license.model_copy(update={"token": license.token.strip()})


def sanitize_keyword_stats(stats: KeywordStats) -> KeywordStats:
    return stats.model_copy(update={
        "keyword": sanitize_string(stats.keyword).lower(),
        "category_id": stats.category_id.strip(),
    })


def sanitize_ad_pack(pack: AdPack) -> AdPack:
    categories = [
        c.model_copy(update={
            "name": sanitize_string(c.name),
            "description": sanitize_string(c.description),
            "templates": [
                t.model_copy(update={
                    "title": sanitize_string(t.title),
                    "content": sanitize_string(t.content),
                    "keywords": _clean_keywords(t.keywords),
                })
                for t in c.templates
            ],
        })
        for c in pack.categories
    ]
    return pack.model_copy(update={
        "name": sanitize_string(pack.name),
        "niche": sanitize_string(pack.niche),
        "author": sanitize_string(pack.author),
        "description": sanitize_string(pack.description),
        "categories": categories,
    })


def sanitize_category_pack(pack: CategoryPack) -> CategoryPack:
    return pack.model_copy(update={
        "name": sanitize_string(pack.name),
        "category": pack.category.model_copy(update={
            "name": sanitize_string(pack.category.name),
            "description": sanitize_string(pack.category.description),
        }),
        "templates": [
            t.model_copy(update={
                "label": sanitize_string(t.label),
                "body": sanitize_string(t.body),
                "keywords": _clean_keywords(t.keywords),
            })
            for t in pack.templates
        ],
    })
