# tests/unit/test_persistence.py
"""Unit tests for the raw-SQL repositories using MagicMock AsyncSession."""
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.esc_audit.domain.models import AuditEvent
from src.esc_audit.infrastructure.persistence import AuditRepository
from src.esc_common.enums import (
    DisputeOutcome,
    EvidenceType,
    OfferStatus,
    PartyRole,
    PaymentDirection,
    PaymentStatus,
    TransactionStatus,
)
from src.esc_common.errors import (
    ActiveDisputeExistsError,
    ActiveTransactionExistsError,
    DuplicateActiveOfferError,
    InternalError,
)
from src.esc_dispute.domain.models import Dispute, DisputeEvidence
from src.esc_dispute.infrastructure.persistence import DisputeRepository
from src.esc_listing.infrastructure.persistence import ListingService
from src.esc_offer.domain.models import Offer
from src.esc_offer.infrastructure.persistence import OfferRepository
from src.esc_transaction.domain.models import Payment, Transaction
from src.esc_transaction.infrastructure.persistence import (
    PaymentRepository,
    TransactionRepository,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _make_tx_row(**kwargs):
    row = MagicMock()
    row.id = kwargs.get("id", "tx-1")
    row.listing_id = "listing-1"
    row.offer_id = "offer-1"
    row.buyer_id = "buyer-1"
    row.seller_id = "seller-1"
    row.agreed_price_minor = 5_000_000
    row.status = kwargs.get("status", "FUNDED")
    row.escrow_requested_at = NOW
    row.funded_at = NOW
    row.verification_deadline = None
    row.resolved_at = None
    row.closed_at = None
    row.active_dispute_id = None
    row.resolution_outcome = kwargs.get("resolution_outcome")
    row.split_seller_bps = kwargs.get("split_seller_bps")
    row.needs_review = False
    row.review_reason = None
    row.created_at = NOW
    row.updated_at = NOW
    return row


def _make_offer_row(**kwargs):
    row = MagicMock()
    row.id = kwargs.get("id", "offer-1")
    row.listing_id = "listing-1"
    row.buyer_id = "buyer-1"
    row.seller_id = "seller-1"
    row.amount_minor = 4_800_000
    row.status = kwargs.get("status", "SENT")
    row.message = None
    row.counter_amount_minor = None
    row.expires_at = NOW
    row.responded_at = None
    row.created_at = NOW
    row.updated_at = NOW
    return row


def _result(rows=None, one=None, rowcount=1):
    result = MagicMock()
    result.rowcount = rowcount
    result.fetchall.return_value = rows or []
    result.fetchone.return_value = one
    return result


@pytest.fixture
def db():
    session = MagicMock()
    session.execute = AsyncMock(return_value=_result())
    session.begin_nested.return_value.__aenter__ = AsyncMock(return_value=None)
    session.begin_nested.return_value.__aexit__ = AsyncMock(return_value=False)
    return session


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT", {}, Exception("duplicate key value"))


class TestTransactionRepository:
    async def test_get_by_id_maps_enums(self, db):
        db.execute.return_value = _result(
            one=_make_tx_row(status="READY_TO_RELEASE", resolution_outcome="SPLIT", split_seller_bps=7000)
        )
        tx = await TransactionRepository().get_by_id("tx-1", db)
        assert tx.status == TransactionStatus.READY_TO_RELEASE
        assert tx.resolution_outcome == DisputeOutcome.SPLIT
        assert tx.expected_payout_minor == 3_500_000

    async def test_get_by_id_missing(self, db):
        assert await TransactionRepository().get_by_id("missing", db) is None

    async def test_get_for_update_locks_row(self, db):
        db.execute.return_value = _result(one=_make_tx_row())
        await TransactionRepository().get_for_update("tx-1", db)
        sql = str(db.execute.call_args[0][0])
        assert "FOR UPDATE" in sql

    async def test_insert_translates_unique_violation(self, db):
        db.execute.side_effect = _integrity_error()
        tx = Transaction(
            id="tx-2", listing_id="listing-1", offer_id="offer-2", buyer_id="b",
            seller_id="s", agreed_price_minor=100,
        )
        with pytest.raises(ActiveTransactionExistsError):
            await TransactionRepository().insert(tx, db)
        db.begin_nested.assert_called_once()

    async def test_update_serialises_enums(self, db):
        tx = Transaction(
            id="tx-1", listing_id="l", offer_id=None, buyer_id="b", seller_id="s",
            agreed_price_minor=100, status=TransactionStatus.DISPUTED,
            resolution_outcome=DisputeOutcome.BUYER,
        )
        await TransactionRepository().update(tx, db)
        params = db.execute.call_args[0][1]
        assert params["status"] == "DISPUTED"
        assert params["resolution_outcome"] == "BUYER"

    async def test_update_of_missing_row_is_internal_error(self, db):
        db.execute.return_value = _result(rowcount=0)
        tx = Transaction(
            id="tx-gone", listing_id="l", offer_id=None, buyer_id="b", seller_id="s",
            agreed_price_minor=100,
        )
        with pytest.raises(InternalError):
            await TransactionRepository().update(tx, db)

    async def test_sweep_candidates_returns_ids(self, db):
        first, second = MagicMock(id="tx-1"), MagicMock(id="tx-2")
        db.execute.return_value = _result(rows=[first, second])
        ids = await TransactionRepository().list_sweep_candidates(NOW, db)
        assert ids == ["tx-1", "tx-2"]
        assert db.execute.call_args[0][1] == {"now": NOW}


class TestPaymentRepository:
    def _payment(self) -> Payment:
        return Payment(
            id="pay-1", transaction_id="tx-1", direction=PaymentDirection.FUNDING,
            amount_minor=100, status=PaymentStatus.SUCCESS, provider_ref="FND-1",
        )

    async def test_insert_returns_true_when_row_written(self, db):
        db.execute.return_value = _result(one=MagicMock(id="pay-1"))
        assert await PaymentRepository().insert(self._payment(), db) is True

    async def test_insert_returns_false_on_ref_conflict(self, db):
        db.execute.return_value = _result(one=None)
        assert await PaymentRepository().insert(self._payment(), db) is False
        assert "ON CONFLICT (provider_ref) DO NOTHING" in str(db.execute.call_args[0][0])

    async def test_get_by_provider_ref(self, db):
        row = MagicMock()
        row.id = "pay-1"
        row.transaction_id = "tx-1"
        row.direction = "REFUND"
        row.amount_minor = 100
        row.status = "PENDING"
        row.provider_ref = "RFD-1"
        row.created_at = NOW
        row.updated_at = NOW
        db.execute.return_value = _result(one=row)
        payment = await PaymentRepository().get_by_provider_ref("RFD-1", db)
        assert payment.direction == PaymentDirection.REFUND
        assert payment.status == PaymentStatus.PENDING


class TestOfferRepository:
    async def test_insert_translates_unique_violation(self, db):
        db.execute.side_effect = _integrity_error()
        offer = Offer(
            id="offer-2", listing_id="listing-1", buyer_id="buyer-1", seller_id="seller-1",
            amount_minor=100, expires_at=NOW,
        )
        with pytest.raises(DuplicateActiveOfferError):
            await OfferRepository().insert(offer, db)

    async def test_get_pending(self, db):
        db.execute.return_value = _result(one=_make_offer_row())
        offer = await OfferRepository().get_pending("listing-1", "buyer-1", db)
        assert offer.status == OfferStatus.SENT

    async def test_expire_due_returns_ids(self, db):
        db.execute.return_value = _result(rows=[MagicMock(id="offer-1")])
        assert await OfferRepository().expire_due(NOW, db) == ["offer-1"]

    async def test_list_received_filters_on_seller(self, db):
        db.execute.return_value = _result(rows=[_make_offer_row()])
        offers = await OfferRepository().list_for_user("seller-1", "received", None, 21, db)
        assert len(offers) == 1
        assert "seller_id = :user_id" in str(db.execute.call_args[0][0])

    async def test_expiry_stats_handles_nulls(self, db):
        row = MagicMock(needs_expiry=None, expiring_soon=2, active=5)
        db.execute.return_value = _result(one=row)
        stats = await OfferRepository().expiry_stats(NOW, NOW, db)
        assert (stats.needs_expiry, stats.expiring_soon, stats.active) == (0, 2, 5)


class TestDisputeRepository:
    async def test_insert_translates_unique_violation(self, db):
        db.execute.side_effect = _integrity_error()
        dispute = Dispute(id="d1", transaction_id="tx-1", raised_by_id="buyer-1", summary="x")
        with pytest.raises(ActiveDisputeExistsError):
            await DisputeRepository().insert(dispute, db)

    async def test_next_message_seq(self, db):
        db.execute.return_value = _result(one=MagicMock(next_seq=4))
        assert await DisputeRepository().next_message_seq("d1", db) == 4

    async def test_list_messages_maps_roles(self, db):
        row = MagicMock()
        row.id = "m1"
        row.dispute_id = "d1"
        row.seq = 1
        row.sender_id = "admin-1"
        row.sender_role = "ADMIN"
        row.content = "Reviewing"
        row.created_at = NOW
        db.execute.return_value = _result(rows=[row])
        messages = await DisputeRepository().list_messages("d1", db)
        assert messages[0].sender_role == PartyRole.ADMIN

    async def test_insert_evidence_params(self, db):
        evidence = DisputeEvidence(
            id="e1", dispute_id="d1", uploaded_by_id="seller-1",
            uploader_role=PartyRole.SELLER, url="https://files.example.com/deed.pdf",
            evidence_type=EvidenceType.DOCUMENT, mime_type="application/pdf", created_at=NOW,
        )
        await DisputeRepository().insert_evidence(evidence, db)
        params = db.execute.call_args[0][1]
        assert params["type"] == "DOCUMENT"
        assert params["uploader_role"] == "SELLER"
        assert params["description"] is None

    async def test_list_evidence_maps_row(self, db):
        row = MagicMock()
        row.id = "e1"
        row.dispute_id = "d1"
        row.uploaded_by_id = "buyer-1"
        row.uploader_role = "BUYER"
        row.type = "VIDEO"
        row.url = "https://files.example.com/walkthrough.mp4"
        row.description = None
        row.mime_type = "video/mp4"
        row.created_at = NOW
        db.execute.return_value = _result(rows=[row])
        evidence = await DisputeRepository().list_evidence("d1", db)
        assert evidence[0].evidence_type == EvidenceType.VIDEO
        assert evidence[0].uploader_role == PartyRole.BUYER


class TestAuditRepository:
    async def test_append_serialises_diff(self, db):
        event = AuditEvent(
            entity_type="TRANSACTION", entity_id="tx-1", actor_id="SYSTEM",
            actor_type="SYSTEM", action="STATUS_CHANGE",
            diff={"from": "FUNDED", "to": "VERIFICATION_PERIOD", "at": NOW},
        )
        await AuditRepository().append(event, db)
        params = db.execute.call_args[0][1]
        assert json.loads(params["diff"])["to"] == "VERIFICATION_PERIOD"
        assert params["actor_type"] == "SYSTEM"


class TestListingService:
    async def test_active_only_when_published(self, db):
        row = MagicMock(id="listing-1", seller_id="seller-1", price_minor=5_000_000, status="SOLD")
        db.execute.return_value = _result(one=row)
        listing = await ListingService().get_listing("listing-1", db)
        assert listing.is_active is False

    async def test_mark_sold(self, db):
        await ListingService().mark_sold("listing-1", db)
        assert db.execute.call_args[0][1] == {"listing_id": "listing-1", "status": "SOLD"}
