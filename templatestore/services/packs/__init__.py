"""Pack exchange: codec, import merge engine and export assembly."""

from .codec import dumps, pack_kind, parse_pack, serialize_ad_pack, serialize_category_pack
from .exporter import (
    AdPackInfo,
    ExportOptions,
    ExportableCategory,
    PackFile,
    export_ad_pack,
    export_category_pack,
    generate_pack_file,
    list_exportable_categories,
)
from .merger import (
    ImportOptions,
    ImportPlan,
    ImportPreview,
    ImportResult,
    apply_import,
    import_pack,
    plan_import,
    preview_import,
)

__all__ = [
    "AdPackInfo",
    "ExportOptions",
    "ExportableCategory",
    "ImportOptions",
    "ImportPlan",
    "ImportPreview",
    "ImportResult",
    "PackFile",
    "apply_import",
    "dumps",
    "export_ad_pack",
    "export_category_pack",
    "generate_pack_file",
    "import_pack",
    "list_exportable_categories",
    "pack_kind",
    "parse_pack",
    "plan_import",
    "preview_import",
    "serialize_ad_pack",
    "serialize_category_pack",
]
