"""Time-ordered IDs for escrow entities and gateway references.

IDs are 20-digit zero-padded decimal strings, so lexical order (the order
Postgres sorts the VARCHAR primary keys in) is creation order within one
node. Cursor pagination depends on that.
"""

import threading
import time
from collections.abc import Callable

from config.settings import settings

EPOCH_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z
NODE_BITS = 10
SEQUENCE_BITS = 12
MAX_NODE_ID = (1 << NODE_BITS) - 1
SEQUENCE_MASK = (1 << SEQUENCE_BITS) - 1


class SnowflakeIdGenerator:
    """timestamp(ms since EPOCH_MS) | node id | per-ms sequence."""

    def __init__(self, node_id: int = 0, ms_source: Callable[[], int] | None = None) -> None:
        if not 0 <= node_id <= MAX_NODE_ID:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE_ID}, got {node_id}")
        self._node_id = node_id
        self._now_ms = ms_source or (lambda: time.time_ns() // 1_000_000)
        self._last_ms = -1
        self._seq = 0
        self._mutex = threading.Lock()

    def next_id(self) -> str:
        with self._mutex:
            # Never step back in time; a slewed clock reuses the last ms
            now = max(self._now_ms(), self._last_ms)
            if now == self._last_ms:
                self._seq = (self._seq + 1) & SEQUENCE_MASK
                if self._seq == 0:
                    while now <= self._last_ms:
                        now = self._now_ms()
            else:
                self._seq = 0
            self._last_ms = now
            value = (
                (now - EPOCH_MS) << (NODE_BITS + SEQUENCE_BITS)
                | self._node_id << SEQUENCE_BITS
                | self._seq
            )
        return f"{value:020d}"


_generator = SnowflakeIdGenerator(node_id=settings.ID_NODE)


def generate_id() -> str:
    return _generator.next_id()


def generate_provider_ref(prefix: str) -> str:
    """Reference handed to the payment gateway for a checkout, e.g. FND-000..."""
    return f"{prefix}-{_generator.next_id()}"
