"""Opaque cursor pagination shared by list endpoints.

Entity ids are zero-padded snowflakes, so `id < cursor_id ORDER BY id DESC`
pages newest-first without a COUNT(*).
"""

import base64
import json
from collections.abc import Sequence
from typing import Protocol, TypeVar


class _HasId(Protocol):
    id: str


T = TypeVar("T", bound=_HasId)


def cursor_encode(last_id: str) -> str:
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> str | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return str(payload["id"])
    except Exception:
        return None


def paginate(rows: Sequence[T], limit: int) -> tuple[list[T], str | None, bool]:
    """Split a limit+1 fetch into (page, next_cursor, has_more)."""
    has_more = len(rows) > limit
    page = list(rows[:limit])
    next_cursor = cursor_encode(page[-1].id) if has_more and page else None
    return page, next_cursor, has_more
