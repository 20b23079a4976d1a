"""Small, side-effect free helpers used across services.

Keep this package dependency-light to avoid circular imports.
"""

from .datetime_fmt import is_iso_timestamp, now_iso  # noqa: F401
from .ids import generate_id  # noqa: F401
from .text import sanitize_string, slugify  # noqa: F401
