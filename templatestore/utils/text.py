from __future__ import annotations

import re

# `&` is not escaped: sanitize_string(sanitize_string(s)) == sanitize_string(s).
_ESCAPES = str.maketrans({
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
})

_SLUG_RE = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_string(value) -> str:
    """HTML-escape markup characters and trim. Non-strings become ''."""
    if not isinstance(value, str):
        return ""
    return value.translate(_ESCAPES).strip()


def slugify(value: str) -> str:
    """File-name friendly form: `My Pack!` -> `my-pack-`."""
    return _SLUG_RE.sub("-", value or "").lower()
