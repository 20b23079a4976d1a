from __future__ import annotations

import time
import uuid


def generate_id(prefix: str) -> str:
    """Collision-resistant id like `tpl_1700000000000_3f9a1c2b7`."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
