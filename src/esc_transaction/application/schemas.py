# src/esc_transaction/application/schemas.py
from datetime import datetime

from pydantic import BaseModel, Field

from src.esc_common.enums import (
    DisputeOutcome,
    PaymentDirection,
    PaymentStatus,
    TransactionStatus,
)
from src.esc_transaction.application.engine import SweepResult
from src.esc_transaction.domain.models import Payment, Transaction
from src.esc_transaction.domain.state_machine import allowed_events


class TransactionResponse(BaseModel):
    id: str
    listing_id: str
    offer_id: str | None
    buyer_id: str
    seller_id: str
    agreed_price_minor: int
    status: TransactionStatus
    escrow_requested_at: datetime | None = None
    funded_at: datetime | None = None
    verification_deadline: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    active_dispute_id: str | None = None
    resolution_outcome: DisputeOutcome | None = None
    split_seller_bps: int | None = None
    needs_review: bool = False
    review_reason: str | None = None
    next_events: list[str] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionResponse":
        return cls(
            id=tx.id,
            listing_id=tx.listing_id,
            offer_id=tx.offer_id,
            buyer_id=tx.buyer_id,
            seller_id=tx.seller_id,
            agreed_price_minor=tx.agreed_price_minor,
            status=tx.status,
            escrow_requested_at=tx.escrow_requested_at,
            funded_at=tx.funded_at,
            verification_deadline=tx.verification_deadline,
            resolved_at=tx.resolved_at,
            closed_at=tx.closed_at,
            active_dispute_id=tx.active_dispute_id,
            resolution_outcome=tx.resolution_outcome,
            split_seller_bps=tx.split_seller_bps,
            needs_review=tx.needs_review,
            review_reason=tx.review_reason,
            next_events=[e.value for e in allowed_events(tx.status)],
            created_at=tx.created_at,
            updated_at=tx.updated_at,
        )


class PaymentResponse(BaseModel):
    id: str
    transaction_id: str
    direction: PaymentDirection
    amount_minor: int
    status: PaymentStatus
    provider_ref: str
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            transaction_id=payment.transaction_id,
            direction=payment.direction,
            amount_minor=payment.amount_minor,
            status=payment.status,
            provider_ref=payment.provider_ref,
            created_at=payment.created_at,
        )


class EscrowRequestedResponse(BaseModel):
    transaction: TransactionResponse
    payment: PaymentResponse


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    next_cursor: str | None
    has_more: bool


class SweepResponse(BaseModel):
    started: list[str]
    ready: list[str]
    failed: list[str]

    @classmethod
    def from_domain(cls, result: SweepResult) -> "SweepResponse":
        return cls(started=result.started, ready=result.ready, failed=result.failed)


class PaymentEventRequest(BaseModel):
    """Body of a gateway callback."""

    transaction_id: str = Field(..., min_length=1)
    provider_ref: str = Field(..., min_length=1, max_length=128)
    amount_minor: int


class PaymentFailedRequest(PaymentEventRequest):
    direction: PaymentDirection
