"""Transaction state machine — the single source of legal transitions.

Pure functions only. Every engine path computes the next status here, so a
(status, event) pair missing from _TRANSITIONS can never be applied.
"""
from src.esc_common.enums import DisputeOutcome, TransactionEvent, TransactionStatus
from src.esc_common.errors import InvalidStateError

S = TransactionStatus
E = TransactionEvent

_TRANSITIONS: dict[tuple[TransactionStatus, TransactionEvent], TransactionStatus] = {
    (S.CREATED, E.REQUEST_ESCROW): S.ESCROW_REQUESTED,
    (S.ESCROW_REQUESTED, E.FUNDING_CONFIRMED): S.FUNDED,
    (S.FUNDED, E.VERIFICATION_STARTED): S.VERIFICATION_PERIOD,
    (S.VERIFICATION_PERIOD, E.DEADLINE_PASSED_NO_DISPUTE): S.READY_TO_RELEASE,
    (S.VERIFICATION_PERIOD, E.DISPUTE_OPENED): S.DISPUTED,
    (S.FUNDED, E.DISPUTE_OPENED): S.DISPUTED,
    (S.DISPUTED, E.DISPUTE_RESOLVED_SELLER): S.READY_TO_RELEASE,
    (S.DISPUTED, E.DISPUTE_RESOLVED_SPLIT): S.READY_TO_RELEASE,
    (S.DISPUTED, E.DISPUTE_RESOLVED_BUYER): S.REFUND_PENDING,
    (S.READY_TO_RELEASE, E.PAYOUT_CONFIRMED): S.RELEASED,
    (S.REFUND_PENDING, E.REFUND_CONFIRMED): S.REFUNDED,
    (S.RELEASED, E.CLOSE): S.CLOSED,
    (S.REFUNDED, E.CLOSE): S.CLOSED,
}

_RESOLUTION_EVENTS: dict[DisputeOutcome, TransactionEvent] = {
    DisputeOutcome.SELLER: E.DISPUTE_RESOLVED_SELLER,
    DisputeOutcome.SPLIT: E.DISPUTE_RESOLVED_SPLIT,
    DisputeOutcome.BUYER: E.DISPUTE_RESOLVED_BUYER,
}


def is_allowed(current: TransactionStatus, event: TransactionEvent) -> bool:
    return (current, event) in _TRANSITIONS


def next_status(
    transaction_id: str, current: TransactionStatus, event: TransactionEvent
) -> TransactionStatus:
    """Return the target status or raise InvalidStateError naming both sides."""
    target = _TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidStateError("transaction", transaction_id, event.value, current.value)
    return target


def resolution_event(outcome: DisputeOutcome) -> TransactionEvent:
    return _RESOLUTION_EVENTS[outcome]


def allowed_events(current: TransactionStatus) -> list[TransactionEvent]:
    """Events legal from `current`, in table order (exposed to clients as next actions)."""
    return [event for (status, event) in _TRANSITIONS if status == current]
