# src/esc_dispute/application/schemas.py
from datetime import datetime

from pydantic import BaseModel, Field

from src.esc_common.enums import DisputeOutcome, DisputeStatus, EvidenceType, PartyRole
from src.esc_dispute.domain.models import Dispute, DisputeEvidence, DisputeMessage


class OpenDisputeRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1)
    summary: str = Field(..., min_length=1, max_length=2000)


class PostMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    sender_role: PartyRole | None = None


class AddEvidenceRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    type: EvidenceType = EvidenceType.OTHER
    description: str | None = Field(None, max_length=500)
    mime_type: str | None = Field(None, max_length=100)


class ResolveDisputeRequest(BaseModel):
    outcome: DisputeOutcome
    resolution: str = Field(..., min_length=10)
    split_seller_bps: int | None = None


class DisputeResponse(BaseModel):
    id: str
    transaction_id: str
    raised_by_id: str
    summary: str
    status: DisputeStatus
    resolution: str | None = None
    outcome: DisputeOutcome | None = None
    split_seller_bps: int | None = None
    resolved_by_id: str | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    @classmethod
    def from_domain(cls, dispute: Dispute) -> "DisputeResponse":
        return cls(
            id=dispute.id,
            transaction_id=dispute.transaction_id,
            raised_by_id=dispute.raised_by_id,
            summary=dispute.summary,
            status=dispute.status,
            resolution=dispute.resolution,
            outcome=dispute.outcome,
            split_seller_bps=dispute.split_seller_bps,
            resolved_by_id=dispute.resolved_by_id,
            created_at=dispute.created_at,
            resolved_at=dispute.resolved_at,
            closed_at=dispute.closed_at,
        )


class DisputeMessageResponse(BaseModel):
    id: str
    dispute_id: str
    seq: int
    sender_id: str
    sender_role: PartyRole
    content: str
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, message: DisputeMessage) -> "DisputeMessageResponse":
        return cls(
            id=message.id,
            dispute_id=message.dispute_id,
            seq=message.seq,
            sender_id=message.sender_id,
            sender_role=message.sender_role,
            content=message.content,
            created_at=message.created_at,
        )


class DisputeEvidenceResponse(BaseModel):
    id: str
    dispute_id: str
    uploaded_by_id: str
    uploader_role: PartyRole
    type: EvidenceType
    url: str
    description: str | None = None
    mime_type: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, evidence: DisputeEvidence) -> "DisputeEvidenceResponse":
        return cls(
            id=evidence.id,
            dispute_id=evidence.dispute_id,
            uploaded_by_id=evidence.uploaded_by_id,
            uploader_role=evidence.uploader_role,
            type=evidence.evidence_type,
            url=evidence.url,
            description=evidence.description,
            mime_type=evidence.mime_type,
            created_at=evidence.created_at,
        )


class ResolveDisputeResponse(BaseModel):
    dispute: DisputeResponse
    transaction_id: str
    transaction_status: str


class DisputeListResponse(BaseModel):
    items: list[DisputeResponse]
    next_cursor: str | None
    has_more: bool
