# src/esc_transaction/infrastructure/persistence.py
"""TransactionRepository / PaymentRepository — raw SQL persistence implementation."""
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_common.enums import (
    DisputeOutcome,
    PaymentDirection,
    PaymentStatus,
    TransactionStatus,
)
from src.esc_common.errors import ActiveTransactionExistsError, InternalError
from src.esc_transaction.domain.models import Payment, Transaction

# ---------------------------------------------------------------------------
# SQL statements: transactions
# ---------------------------------------------------------------------------

_TX_COLUMNS = """
    id, listing_id, offer_id, buyer_id, seller_id, agreed_price_minor, status,
    escrow_requested_at, funded_at, verification_deadline, resolved_at, closed_at,
    active_dispute_id, resolution_outcome, split_seller_bps,
    needs_review, review_reason, created_at, updated_at
"""

# uq_transactions_active_listing (partial unique index) rejects a second
# non-terminal transaction for the same listing
_INSERT_TX_SQL = text("""
    INSERT INTO transactions (id, listing_id, offer_id, buyer_id, seller_id,
        agreed_price_minor, status, created_at, updated_at)
    VALUES (:id, :listing_id, :offer_id, :buyer_id, :seller_id,
        :agreed_price_minor, :status, :created_at, :updated_at)
""")

_UPDATE_TX_SQL = text("""
    UPDATE transactions
    SET status = :status,
        escrow_requested_at = :escrow_requested_at,
        funded_at = :funded_at,
        verification_deadline = :verification_deadline,
        resolved_at = :resolved_at,
        closed_at = :closed_at,
        active_dispute_id = :active_dispute_id,
        resolution_outcome = :resolution_outcome,
        split_seller_bps = :split_seller_bps,
        needs_review = :needs_review,
        review_reason = :review_reason,
        updated_at = :updated_at
    WHERE id = :id
""")

_GET_TX_SQL = text(f"SELECT {_TX_COLUMNS} FROM transactions WHERE id = :id")

_GET_TX_FOR_UPDATE_SQL = text(f"SELECT {_TX_COLUMNS} FROM transactions WHERE id = :id FOR UPDATE")

_GET_ACTIVE_BY_LISTING_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM transactions
    WHERE listing_id = :listing_id
      AND status NOT IN ('RELEASED', 'REFUNDED', 'CLOSED')
    FOR UPDATE
""")

_SWEEP_CANDIDATES_SQL = text("""
    SELECT id FROM transactions
    WHERE status = 'FUNDED'
       OR (status = 'VERIFICATION_PERIOD'
           AND active_dispute_id IS NULL
           AND verification_deadline <= :now)
    ORDER BY id
""")

_LIST_BY_PARTY_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM transactions
    WHERE ((CAST(:role AS TEXT) IS NULL AND (buyer_id = :user_id OR seller_id = :user_id))
        OR (CAST(:role AS TEXT) = 'buyer' AND buyer_id = :user_id)
        OR (CAST(:role AS TEXT) = 'seller' AND seller_id = :user_id))
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# SQL statements: payments
# ---------------------------------------------------------------------------

_PAYMENT_COLUMNS = """
    id, transaction_id, direction, amount_minor, status, provider_ref, created_at, updated_at
"""

_INSERT_PAYMENT_SQL = text("""
    INSERT INTO payments (id, transaction_id, direction, amount_minor, status,
        provider_ref, created_at, updated_at)
    VALUES (:id, :transaction_id, :direction, :amount_minor, :status,
        :provider_ref, :created_at, :updated_at)
    ON CONFLICT (provider_ref) DO NOTHING
    RETURNING id
""")

_UPDATE_PAYMENT_SQL = text("""
    UPDATE payments
    SET status = :status, amount_minor = :amount_minor, updated_at = :updated_at
    WHERE id = :id
""")

_GET_PAYMENT_BY_REF_SQL = text(
    f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE provider_ref = :provider_ref"
)

_LIST_PAYMENTS_SQL = text(f"""
    SELECT {_PAYMENT_COLUMNS}
    FROM payments
    WHERE transaction_id = :transaction_id
    ORDER BY id
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_transaction(row: Any) -> Transaction:
    return Transaction(
        id=row.id,
        listing_id=row.listing_id,
        offer_id=row.offer_id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        agreed_price_minor=row.agreed_price_minor,
        status=TransactionStatus(row.status),
        escrow_requested_at=row.escrow_requested_at,
        funded_at=row.funded_at,
        verification_deadline=row.verification_deadline,
        resolved_at=row.resolved_at,
        closed_at=row.closed_at,
        active_dispute_id=row.active_dispute_id,
        resolution_outcome=(
            DisputeOutcome(row.resolution_outcome) if row.resolution_outcome else None
        ),
        split_seller_bps=row.split_seller_bps,
        needs_review=row.needs_review,
        review_reason=row.review_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_payment(row: Any) -> Payment:
    return Payment(
        id=row.id,
        transaction_id=row.transaction_id,
        direction=PaymentDirection(row.direction),
        amount_minor=row.amount_minor,
        status=PaymentStatus(row.status),
        provider_ref=row.provider_ref,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class TransactionRepository:
    """Concrete implementation of TransactionRepositoryProtocol using raw SQL."""

    async def insert(self, tx: Transaction, db: AsyncSession) -> None:
        params = {
            "id": tx.id,
            "listing_id": tx.listing_id,
            "offer_id": tx.offer_id,
            "buyer_id": tx.buyer_id,
            "seller_id": tx.seller_id,
            "agreed_price_minor": tx.agreed_price_minor,
            "status": tx.status.value,
            "created_at": tx.created_at,
            "updated_at": tx.updated_at,
        }
        try:
            # SAVEPOINT so a unique violation leaves the outer transaction usable
            async with db.begin_nested():
                await db.execute(_INSERT_TX_SQL, params)
        except IntegrityError as exc:
            raise ActiveTransactionExistsError(tx.listing_id) from exc

    async def get_by_id(self, transaction_id: str, db: AsyncSession) -> Transaction | None:
        row = (await db.execute(_GET_TX_SQL, {"id": transaction_id})).fetchone()
        return _row_to_transaction(row) if row else None

    async def get_for_update(
        self, transaction_id: str, db: AsyncSession
    ) -> Transaction | None:
        row = (await db.execute(_GET_TX_FOR_UPDATE_SQL, {"id": transaction_id})).fetchone()
        return _row_to_transaction(row) if row else None

    async def get_active_by_listing(
        self, listing_id: str, db: AsyncSession
    ) -> Transaction | None:
        row = (
            await db.execute(_GET_ACTIVE_BY_LISTING_SQL, {"listing_id": listing_id})
        ).fetchone()
        return _row_to_transaction(row) if row else None

    async def update(self, tx: Transaction, db: AsyncSession) -> None:
        result = await db.execute(
            _UPDATE_TX_SQL,
            {
                "id": tx.id,
                "status": tx.status.value,
                "escrow_requested_at": tx.escrow_requested_at,
                "funded_at": tx.funded_at,
                "verification_deadline": tx.verification_deadline,
                "resolved_at": tx.resolved_at,
                "closed_at": tx.closed_at,
                "active_dispute_id": tx.active_dispute_id,
                "resolution_outcome": (
                    tx.resolution_outcome.value if tx.resolution_outcome else None
                ),
                "split_seller_bps": tx.split_seller_bps,
                "needs_review": tx.needs_review,
                "review_reason": tx.review_reason,
                "updated_at": tx.updated_at,
            },
        )
        if result.rowcount != 1:
            raise InternalError(f"Transaction {tx.id} update matched {result.rowcount} rows")

    async def list_sweep_candidates(self, now: datetime, db: AsyncSession) -> list[str]:
        result = await db.execute(_SWEEP_CANDIDATES_SQL, {"now": now})
        return [row.id for row in result.fetchall()]

    async def list_by_party(
        self,
        user_id: str,
        role: str | None,
        cursor_id: str | None,
        limit: int,
        db: AsyncSession,
    ) -> list[Transaction]:
        result = await db.execute(
            _LIST_BY_PARTY_SQL,
            {"user_id": user_id, "role": role, "cursor_id": cursor_id, "limit": limit},
        )
        return [_row_to_transaction(row) for row in result.fetchall()]


class PaymentRepository:
    """Concrete implementation of PaymentRepositoryProtocol using raw SQL."""

    async def get_by_provider_ref(
        self, provider_ref: str, db: AsyncSession
    ) -> Payment | None:
        row = (
            await db.execute(_GET_PAYMENT_BY_REF_SQL, {"provider_ref": provider_ref})
        ).fetchone()
        return _row_to_payment(row) if row else None

    async def insert(self, payment: Payment, db: AsyncSession) -> bool:
        result = await db.execute(
            _INSERT_PAYMENT_SQL,
            {
                "id": payment.id,
                "transaction_id": payment.transaction_id,
                "direction": payment.direction.value,
                "amount_minor": payment.amount_minor,
                "status": payment.status.value,
                "provider_ref": payment.provider_ref,
                "created_at": payment.created_at,
                "updated_at": payment.updated_at,
            },
        )
        return result.fetchone() is not None

    async def update_status(self, payment: Payment, db: AsyncSession) -> None:
        await db.execute(
            _UPDATE_PAYMENT_SQL,
            {
                "id": payment.id,
                "status": payment.status.value,
                "amount_minor": payment.amount_minor,
                "updated_at": payment.updated_at,
            },
        )

    async def list_by_transaction(
        self, transaction_id: str, db: AsyncSession
    ) -> list[Payment]:
        result = await db.execute(_LIST_PAYMENTS_SQL, {"transaction_id": transaction_id})
        return [_row_to_payment(row) for row in result.fetchall()]
