from __future__ import annotations

import time
import uuid
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


def random_id() -> str:
    return str(uuid.uuid4())


def room_id_from_path(path: str | None) -> str:
    """Room id is the last path segment; a trailing slash yields an empty id."""
    return str(path or "").split("/")[-1]


def normalize_pair(values: Any) -> list[str]:
    return [str(value) for value in values]
