"""Audit event — append-only record of every committed state change."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class AuditEvent:
    entity_type: str  # OFFER / TRANSACTION / DISPUTE / PAYMENT
    entity_id: str
    actor_id: str
    actor_type: str  # USER / SYSTEM
    action: str  # CREATE / STATUS_CHANGE / BATCH_EXPIRE / PAYMENT_MISMATCH / PAYMENT_FAILED
    # PAYMENT_SUPERSEDED / UPLOAD_EVIDENCE
    diff: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
