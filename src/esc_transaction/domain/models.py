"""Transaction domain models — pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass
from datetime import datetime

from src.esc_common.enums import (
    DisputeOutcome,
    PaymentDirection,
    PaymentStatus,
    TransactionStatus,
)
from src.esc_common.money import split_by_bps

# A listing may carry at most one transaction outside this set
TERMINAL_STATUSES: frozenset[TransactionStatus] = frozenset(
    {TransactionStatus.RELEASED, TransactionStatus.REFUNDED, TransactionStatus.CLOSED}
)


@dataclass
class Transaction:
    id: str
    listing_id: str
    offer_id: str | None
    buyer_id: str
    seller_id: str
    agreed_price_minor: int
    status: TransactionStatus = TransactionStatus.CREATED
    escrow_requested_at: datetime | None = None
    funded_at: datetime | None = None
    verification_deadline: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    # Dispute bookkeeping: set while DISPUTED, outcome kept for the payout adapter
    active_dispute_id: str | None = None
    resolution_outcome: DisputeOutcome | None = None
    split_seller_bps: int | None = None
    # Manual review flag (gateway amount mismatch); does not affect status
    needs_review: bool = False
    review_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    @property
    def expected_payout_minor(self) -> int:
        """Amount the seller must receive for READY_TO_RELEASE -> RELEASED."""
        if self.resolution_outcome == DisputeOutcome.SPLIT and self.split_seller_bps is not None:
            seller_share, _ = split_by_bps(self.agreed_price_minor, self.split_seller_bps)
            return seller_share
        return self.agreed_price_minor

    @property
    def expected_refund_minor(self) -> int:
        return self.agreed_price_minor


@dataclass
class Payment:
    id: str
    transaction_id: str
    direction: PaymentDirection
    amount_minor: int
    status: PaymentStatus
    provider_ref: str  # idempotency key, unique across all payments
    created_at: datetime | None = None
    updated_at: datetime | None = None
