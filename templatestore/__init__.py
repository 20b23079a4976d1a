"""Versioned template library: schema migrations and pack import/export."""

from .errors import (
    ConflictError,
    LibraryError,
    MigrationError,
    NotFoundError,
    ParseError,
    StorageError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "ConflictError",
    "LibraryError",
    "MigrationError",
    "NotFoundError",
    "ParseError",
    "StorageError",
    "ValidationError",
    "__version__",
]
