from __future__ import annotations

from datetime import datetime, timezone

_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"


def format_iso(dt: datetime) -> str:
    """UTC timestamp with millisecond precision and a Z suffix: 2025-01-01T00:00:00.000Z"""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(_ISO_FORMAT) + f".{dt.microsecond // 1000:03d}Z"


def now_iso() -> str:
    return format_iso(datetime.now(timezone.utc))


def is_iso_timestamp(value) -> bool:
    """True only for strings that round-trip through format_iso unchanged."""
    if not isinstance(value, str) or not value.endswith("Z"):
        return False
    try:
        dt = datetime.fromisoformat(value[:-1] + "+00:00")
    except ValueError:
        return False
    return format_iso(dt) == value
