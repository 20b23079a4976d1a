"""Library entities: typed values (schema), structural validation (validator)
and typed operations over the persistent store (storage).
"""

from .schema import (
    AdPack,
    Category,
    CategoryPack,
    CURRENT_GENERATION,
    KeywordStats,
    License,
    Settings,
    Template,
    default_settings,
)
from .storage import (
    LibrarySnapshot,
    delete_category,
    delete_template,
    get_category,
    get_imported_packs,
    get_license,
    get_settings,
    get_template,
    list_categories,
    list_templates,
    load_snapshot,
    recount_categories,
    record_template_usage,
    save_category,
    save_settings,
    save_template,
)
from .validator import (
    ValidationResult,
    parse_ad_pack,
    parse_category,
    parse_category_pack,
    parse_keyword_stats,
    parse_license,
    parse_settings,
    parse_template,
    sanitize_ad_pack,
    sanitize_category,
    sanitize_category_pack,
    sanitize_keyword_stats,
    sanitize_license,
    sanitize_settings,
    sanitize_template,
    validate_ad_pack,
    validate_category,
    validate_category_pack,
    validate_keyword_stats,
    validate_license,
    validate_settings,
    validate_template,
)

__all__ = [
    "AdPack",
    "Category",
    "CategoryPack",
    "CURRENT_GENERATION",
    "KeywordStats",
    "License",
    "LibrarySnapshot",
    "Settings",
    "Template",
    "ValidationResult",
    "default_settings",
    "delete_category",
    "delete_template",
    "get_category",
    "get_imported_packs",
    "get_license",
    "get_settings",
    "get_template",
    "list_categories",
    "list_templates",
    "load_snapshot",
    "parse_ad_pack",
    "parse_category",
    "parse_category_pack",
    "parse_keyword_stats",
    "parse_license",
    "parse_settings",
    "parse_template",
    "recount_categories",
    "record_template_usage",
    "sanitize_ad_pack",
    "sanitize_category",
    "sanitize_category_pack",
    "sanitize_keyword_stats",
    "sanitize_license",
    "sanitize_settings",
    "sanitize_template",
    "save_category",
    "save_settings",
    "save_template",
    "validate_ad_pack",
    "validate_category",
    "validate_category_pack",
    "validate_keyword_stats",
    "validate_license",
    "validate_settings",
    "validate_template",
]
