"""Global enums — must match DB CHECK constraints exactly.

Ref: alembic/versions/001..005
"""

from enum import Enum


class OfferStatus(str, Enum):
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    COUNTERED = "COUNTERED"
    EXPIRED = "EXPIRED"
    WITHDRAWN = "WITHDRAWN"


class OfferAction(str, Enum):
    ACCEPT = "ACCEPT"
    COUNTER = "COUNTER"
    WITHDRAW = "WITHDRAW"


class TransactionStatus(str, Enum):
    CREATED = "CREATED"
    ESCROW_REQUESTED = "ESCROW_REQUESTED"
    FUNDED = "FUNDED"
    VERIFICATION_PERIOD = "VERIFICATION_PERIOD"
    DISPUTED = "DISPUTED"
    READY_TO_RELEASE = "READY_TO_RELEASE"
    REFUND_PENDING = "REFUND_PENDING"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"
    CLOSED = "CLOSED"


class TransactionEvent(str, Enum):
    """Inputs to the transaction state machine (one per table edge label)."""
    REQUEST_ESCROW = "requestEscrow"
    FUNDING_CONFIRMED = "fundingConfirmed"
    VERIFICATION_STARTED = "verificationStarted"
    DEADLINE_PASSED_NO_DISPUTE = "deadlinePassedNoDispute"
    DISPUTE_OPENED = "disputeOpened"
    DISPUTE_RESOLVED_SELLER = "disputeResolved(SELLER)"
    DISPUTE_RESOLVED_SPLIT = "disputeResolved(SPLIT)"
    DISPUTE_RESOLVED_BUYER = "disputeResolved(BUYER)"
    PAYOUT_CONFIRMED = "payoutConfirmed"
    REFUND_CONFIRMED = "refundConfirmed"
    CLOSE = "close"


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED_BUYER = "RESOLVED_BUYER"
    RESOLVED_SELLER = "RESOLVED_SELLER"
    RESOLVED_SPLIT = "RESOLVED_SPLIT"
    CLOSED = "CLOSED"


class DisputeOutcome(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"
    SPLIT = "SPLIT"


class EvidenceType(str, Enum):
    PHOTO = "PHOTO"
    DOCUMENT = "DOCUMENT"
    VIDEO = "VIDEO"
    OTHER = "OTHER"


class PartyRole(str, Enum):
    """Role of an actor relative to one transaction / offer / dispute."""
    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class PlatformRole(str, Enum):
    """Roles carried in the JWT `roles` claim."""
    USER = "USER"
    ADMIN = "ADMIN"
    SUPPORT = "SUPPORT"
    COMPLIANCE = "COMPLIANCE"
    SYSTEM = "SYSTEM"


class PaymentDirection(str, Enum):
    FUNDING = "FUNDING"
    RELEASE = "RELEASE"
    REFUND = "REFUND"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ActorType(str, Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


class NotificationEvent(str, Enum):
    OFFER_RECEIVED = "offer.received"
    OFFER_ACCEPTED = "offer.accepted"
    OFFER_COUNTERED = "offer.countered"
    TRANSACTION_FUNDED = "transaction.funded"
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_RESOLVED = "dispute.resolved"
    TRANSACTION_RELEASED = "transaction.released"
    TRANSACTION_REFUNDED = "transaction.refunded"
