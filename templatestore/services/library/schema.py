"""Typed, immutable entity values.

Records are persisted and exchanged with camelCase keys; attributes are
snake_case. Build instances from loose mappings through the parse_* functions
in validator.py, which validate before constructing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ...utils.datetime_fmt import now_iso

CURRENT_GENERATION = 2

MAX_LABEL_LENGTH = 100
MAX_BODY_LENGTH = 1000
MAX_KEYWORDS = 20
MAX_TEMPLATE_CATEGORY_LENGTH = 50

MAX_CATEGORY_ID_LENGTH = 50
MAX_CATEGORY_NAME_LENGTH = 100
MAX_CATEGORY_DESCRIPTION_LENGTH = 500

MAX_PACK_NAME_LENGTH = 100
MAX_PACK_TEMPLATES = 200

DEFAULT_CATEGORY_ID = "custom"

Theme = Literal["light", "dark"]
AIProvider = Literal["gemini", "openai"]
LicenseStatus = Literal["free", "pro", "expired", "revoked"]
LicenseTier = Literal["free", "pro"]
LicensePlan = Literal["monthly", "yearly"]

LICENSE_STATUSES = ("free", "pro", "expired", "revoked")
LICENSE_TIERS = ("free", "pro")
LICENSE_PLANS = ("monthly", "yearly", None)
LICENSE_FEATURES = ("unlimited_templates", "ai_integration", "ad_packs", "priority_support")
AI_PROVIDERS = ("gemini", "openai")
THEMES = ("light", "dark")


class Entity(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    def to_record(self) -> dict[str, Any]:
        """camelCase dict for storage / exchange."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Template(Entity):
    id: str
    label: str
    category: str = DEFAULT_CATEGORY_ID
    keywords: list[str] = Field(default_factory=list)
    body: str
    is_prebuilt: bool = False
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
    usage_count: int = 0


class Category(Entity):
    id: str
    name: str
    description: str = ""
    is_prebuilt: bool = False
    template_count: int = 0
    created_at: str = Field(default_factory=now_iso)


class UISettings(Entity):
    sidebar_width: int = 320
    theme: Theme = "light"
    show_upgrade_prompts: bool = True


class TemplatePreferences(Entity):
    max_suggestions: int = 3
    enable_rotation: bool = True
    prevent_repetition: bool = True
    preferred_category: str = ""


class AffiliateLinks(Entity):
    default: str = ""
    category_overrides: dict[str, str] = Field(default_factory=dict)


class Settings(Entity):
    ui: UISettings = Field(default_factory=UISettings)
    templates: TemplatePreferences = Field(default_factory=TemplatePreferences)

    # generation 2 fields
    business_description: str = ""
    company_url: str = ""
    ai_provider: AIProvider = "gemini"
    ai_key_encrypted: str = ""
    onboarding_completed: bool = False
    affiliate_links: AffiliateLinks = Field(default_factory=AffiliateLinks)


def default_settings(*, onboarding_completed: bool = False) -> dict[str, Any]:
    """Fresh settings record. Returns a new dict on every call."""
    return Settings(onboarding_completed=onboarding_completed).to_record()


class License(Entity):
    token: str = ""
    status: LicenseStatus = "free"
    tier: LicenseTier = "free"
    plan: LicensePlan | None = None
    expires_at: str | None = None
    last_validated_at: str | None = None
    grace_period_ends: str | None = None
    features: list[str] = Field(default_factory=list)

    def has_feature(self, feature: str) -> bool:
        return feature in self.features

    def is_active(self, now: datetime | None = None) -> bool:
        if self.status == "revoked":
            return False
        if self.status == "free":
            return True

        now = now or datetime.now(timezone.utc)
        if self.expires_at and now > _parse_iso(self.expires_at):
            if self.grace_period_ends:
                return now <= _parse_iso(self.grace_period_ends)
            return False

        return self.status == "pro"


class KeywordStats(Entity):
    keyword: str
    category_id: str
    matches: int = 0
    chosen: int = 0
    ignored: int = 0
    score: float = 0.0
    last_updated: str = Field(default_factory=now_iso)

    def with_updated_score(self) -> "KeywordStats":
        score = self.chosen / self.matches if self.matches > 0 else 0.0
        return self.model_copy(update={"score": score, "last_updated": now_iso()})

    def should_suggest_removal(self, threshold: float = 0.1, min_matches: int = 20) -> bool:
        return self.matches >= min_matches and self.score < threshold


class AdPackTemplate(Entity):
    id: str
    title: str
    content: str
    keywords: list[str] = Field(default_factory=list)


class AdPackCategory(Entity):
    id: str
    name: str
    description: str = ""
    templates: list[AdPackTemplate] = Field(default_factory=list)


class AdPackMetadata(Entity):
    total_templates: int = 0
    total_categories: int = 0
    download_count: int = 0


class AdPack(Entity):
    id: str
    name: str
    niche: str
    version: str = "1.0.0"
    author: str = "anonymous"
    description: str = ""
    created_at: str = Field(default_factory=now_iso)
    categories: list[AdPackCategory]
    metadata: AdPackMetadata = Field(default_factory=AdPackMetadata)

    kind: Literal["ad_pack"] = Field(default="ad_pack", exclude=True)

    def with_updated_metadata(self) -> "AdPack":
        metadata = self.metadata.model_copy(update={
            "total_categories": len(self.categories),
            "total_templates": sum(len(c.templates) for c in self.categories),
        })
        return self.model_copy(update={"metadata": metadata})


class PackCategory(Entity):
    id: str
    name: str
    description: str = ""


class PackTemplate(Entity):
    id: str
    label: str
    category: str
    keywords: list[str] = Field(default_factory=list)
    body: str
    is_prebuilt: bool = False
    # internal bookkeeping, absent when the exporter strips it
    created_at: str | None = None
    updated_at: str | None = None
    usage_count: int | None = None


class CategoryPack(Entity):
    name: str
    version: str
    category: PackCategory
    templates: list[PackTemplate]
    metadata: dict[str, Any] | None = None

    kind: Literal["category_pack"] = Field(default="category_pack", exclude=True)


PackDocument = CategoryPack | AdPack


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
