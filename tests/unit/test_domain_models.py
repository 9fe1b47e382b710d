"""Tests for the offer, transaction and dispute dataclasses."""

from datetime import UTC, datetime, timedelta

from src.esc_common.enums import (
    DisputeOutcome,
    DisputeStatus,
    OfferStatus,
    TransactionStatus,
)
from src.esc_dispute.domain.models import Dispute
from src.esc_offer.domain.models import Offer
from src.esc_transaction.domain.models import Transaction

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _make_offer(**overrides: object) -> Offer:
    defaults: dict[str, object] = {
        "id": "offer-1",
        "listing_id": "listing-1",
        "buyer_id": "buyer-1",
        "seller_id": "seller-1",
        "amount_minor": 5_000_000,
        "expires_at": NOW + timedelta(hours=72),
    }
    defaults.update(overrides)
    return Offer(**defaults)  # type: ignore[arg-type]


def _make_tx(**overrides: object) -> Transaction:
    defaults: dict[str, object] = {
        "id": "tx-1",
        "listing_id": "listing-1",
        "offer_id": "offer-1",
        "buyer_id": "buyer-1",
        "seller_id": "seller-1",
        "agreed_price_minor": 5_000_000,
    }
    defaults.update(overrides)
    return Transaction(**defaults)  # type: ignore[arg-type]


class TestOffer:
    def test_defaults_to_sent(self) -> None:
        offer = _make_offer()
        assert offer.status == OfferStatus.SENT
        assert offer.is_pending

    def test_not_expired_before_deadline(self) -> None:
        offer = _make_offer()
        assert not offer.is_expired_at(NOW)
        assert not offer.is_expired_at(offer.expires_at)

    def test_expired_after_deadline_before_sweep(self) -> None:
        offer = _make_offer()
        assert offer.is_expired_at(offer.expires_at + timedelta(seconds=1))

    def test_answered_offer_never_expires(self) -> None:
        offer = _make_offer(status=OfferStatus.ACCEPTED)
        assert not offer.is_expired_at(NOW + timedelta(days=30))


class TestTransaction:
    def test_active_until_terminal(self) -> None:
        assert _make_tx(status=TransactionStatus.DISPUTED).is_active
        for status in (
            TransactionStatus.RELEASED,
            TransactionStatus.REFUNDED,
            TransactionStatus.CLOSED,
        ):
            assert not _make_tx(status=status).is_active

    def test_expected_payout_full_price(self) -> None:
        tx = _make_tx(resolution_outcome=DisputeOutcome.SELLER)
        assert tx.expected_payout_minor == 5_000_000

    def test_expected_payout_split(self) -> None:
        tx = _make_tx(resolution_outcome=DisputeOutcome.SPLIT, split_seller_bps=2500)
        assert tx.expected_payout_minor == 1_250_000

    def test_expected_refund(self) -> None:
        assert _make_tx().expected_refund_minor == 5_000_000


class TestDispute:
    def test_active_statuses(self) -> None:
        dispute = Dispute(id="d1", transaction_id="tx-1", raised_by_id="buyer-1", summary="x")
        assert dispute.is_active
        dispute.status = DisputeStatus.UNDER_REVIEW
        assert dispute.is_active
        dispute.status = DisputeStatus.RESOLVED_SPLIT
        assert not dispute.is_active
