"""Service layer.

Stable import surface for front ends:
    from templatestore.services import ...
"""

from .backup import RestoreResult, create_backup, restore_backup
from .migration import SchemaMigrator, detect_store_generation, get_migration_status
from .packs import (
    ExportOptions,
    ImportOptions,
    export_ad_pack,
    export_category_pack,
    generate_pack_file,
    import_pack,
    parse_pack,
    preview_import,
)

__all__ = [
    "ExportOptions",
    "ImportOptions",
    "RestoreResult",
    "SchemaMigrator",
    "create_backup",
    "detect_store_generation",
    "export_ad_pack",
    "export_category_pack",
    "generate_pack_file",
    "get_migration_status",
    "import_pack",
    "parse_pack",
    "preview_import",
    "restore_backup",
]
