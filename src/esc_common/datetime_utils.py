"""UTC datetime utilities."""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def iso_or_none(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None
