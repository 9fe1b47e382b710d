"""Dispute domain models — pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass
from datetime import datetime

from src.esc_common.enums import DisputeOutcome, DisputeStatus, EvidenceType, PartyRole

ACTIVE_STATUSES: frozenset[DisputeStatus] = frozenset(
    {DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW}
)

RESOLVED_STATUSES: frozenset[DisputeStatus] = frozenset(
    {DisputeStatus.RESOLVED_BUYER, DisputeStatus.RESOLVED_SELLER, DisputeStatus.RESOLVED_SPLIT}
)

OUTCOME_STATUS: dict[DisputeOutcome, DisputeStatus] = {
    DisputeOutcome.BUYER: DisputeStatus.RESOLVED_BUYER,
    DisputeOutcome.SELLER: DisputeStatus.RESOLVED_SELLER,
    DisputeOutcome.SPLIT: DisputeStatus.RESOLVED_SPLIT,
}


@dataclass
class Dispute:
    id: str
    transaction_id: str
    raised_by_id: str
    summary: str
    status: DisputeStatus = DisputeStatus.OPEN
    resolution: str | None = None
    outcome: DisputeOutcome | None = None
    split_seller_bps: int | None = None
    resolved_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass
class DisputeMessage:
    """Append-only; `seq` is the per-dispute total order."""

    id: str
    dispute_id: str
    seq: int
    sender_id: str
    sender_role: PartyRole
    content: str
    created_at: datetime | None = None


@dataclass
class DisputeEvidence:
    """A link to a file held by the marketplace's document store; never mutated."""

    id: str
    dispute_id: str
    uploaded_by_id: str
    uploader_role: PartyRole
    url: str
    evidence_type: EvidenceType = EvidenceType.OTHER
    description: str | None = None
    mime_type: str | None = None
    created_at: datetime | None = None
