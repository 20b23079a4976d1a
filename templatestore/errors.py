"""Error taxonomy for the template library.

Document-level and policy-level failures are raised as exceptions before any
write happens. Per-item failures inside a batch import are collected into the
result object instead (see services.packs.merger.ImportResult).
"""

from __future__ import annotations


class LibraryError(Exception):
    """Base class for all library errors."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n  Details: {self.details}"
        return self.message


class ValidationError(LibraryError):
    """Structural or business-rule violation. Never partially applied."""

    def __init__(self, message: str, reasons: list[str] | None = None):
        self.reasons = list(reasons or [])
        super().__init__(message, details="; ".join(self.reasons) or None)


class ConflictError(LibraryError):
    """Pre-built entity protection triggered; the whole operation is aborted."""


class NotFoundError(LibraryError):
    """Referenced category or template is absent."""


class StorageError(LibraryError):
    """Underlying persistence failure. The original exception is kept as __cause__."""


class ParseError(LibraryError):
    """Malformed exchange document (bad encoding, bad JSON, unknown shape)."""


class MigrationError(LibraryError):
    """A migration step failed; the stored version marker was not advanced."""
