# src/esc_offer/infrastructure/persistence.py
"""OfferRepository — raw SQL persistence implementation."""
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_common.enums import OfferStatus
from src.esc_common.errors import DuplicateActiveOfferError
from src.esc_offer.domain.models import Offer
from src.esc_offer.domain.repository import OfferExpiryStats

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_COLUMNS = """
    id, listing_id, buyer_id, seller_id, amount_minor, status, message,
    counter_amount_minor, expires_at, responded_at, created_at, updated_at
"""

_INSERT_OFFER_SQL = text("""
    INSERT INTO offers (id, listing_id, buyer_id, seller_id, amount_minor, status,
        message, expires_at, created_at, updated_at)
    VALUES (:id, :listing_id, :buyer_id, :seller_id, :amount_minor, :status,
        :message, :expires_at, :created_at, :updated_at)
""")

_UPDATE_OFFER_SQL = text("""
    UPDATE offers
    SET status = :status, counter_amount_minor = :counter_amount_minor,
        responded_at = :responded_at, updated_at = :updated_at
    WHERE id = :id
""")

_GET_OFFER_SQL = text(f"SELECT {_SELECT_COLUMNS} FROM offers WHERE id = :id")

_GET_OFFER_FOR_UPDATE_SQL = text(f"SELECT {_SELECT_COLUMNS} FROM offers WHERE id = :id FOR UPDATE")

_GET_PENDING_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM offers
    WHERE listing_id = :listing_id AND buyer_id = :buyer_id AND status = 'SENT'
    FOR UPDATE
""")

# Single statement: concurrent sweeps each see only rows still SENT
_EXPIRE_DUE_SQL = text("""
    UPDATE offers
    SET status = 'EXPIRED', updated_at = :now
    WHERE status = 'SENT' AND expires_at < :now
    RETURNING id
""")

_LIST_SENT_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM offers
    WHERE buyer_id = :user_id
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_RECEIVED_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM offers
    WHERE seller_id = :user_id
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_EXPIRY_STATS_SQL = text("""
    SELECT
        COUNT(*) FILTER (WHERE expires_at < :now) AS needs_expiry,
        COUNT(*) FILTER (WHERE expires_at >= :now AND expires_at < :soon) AS expiring_soon,
        COUNT(*) FILTER (WHERE expires_at >= :now) AS active
    FROM offers
    WHERE status = 'SENT'
""")


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_offer(row: Any) -> Offer:
    return Offer(
        id=row.id,
        listing_id=row.listing_id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        amount_minor=row.amount_minor,
        status=OfferStatus(row.status),
        message=row.message,
        counter_amount_minor=row.counter_amount_minor,
        expires_at=row.expires_at,
        responded_at=row.responded_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OfferRepository:
    """Concrete implementation of OfferRepositoryProtocol using raw SQL."""

    async def insert(self, offer: Offer, db: AsyncSession) -> None:
        params = {
            "id": offer.id,
            "listing_id": offer.listing_id,
            "buyer_id": offer.buyer_id,
            "seller_id": offer.seller_id,
            "amount_minor": offer.amount_minor,
            "status": offer.status.value,
            "message": offer.message,
            "expires_at": offer.expires_at,
            "created_at": offer.created_at,
            "updated_at": offer.updated_at,
        }
        try:
            async with db.begin_nested():
                await db.execute(_INSERT_OFFER_SQL, params)
        except IntegrityError as exc:
            raise DuplicateActiveOfferError(offer.listing_id, offer.buyer_id) from exc

    async def get_by_id(self, offer_id: str, db: AsyncSession) -> Offer | None:
        row = (await db.execute(_GET_OFFER_SQL, {"id": offer_id})).fetchone()
        return _row_to_offer(row) if row else None

    async def get_for_update(self, offer_id: str, db: AsyncSession) -> Offer | None:
        row = (await db.execute(_GET_OFFER_FOR_UPDATE_SQL, {"id": offer_id})).fetchone()
        return _row_to_offer(row) if row else None

    async def get_pending(
        self, listing_id: str, buyer_id: str, db: AsyncSession
    ) -> Offer | None:
        row = (
            await db.execute(
                _GET_PENDING_SQL, {"listing_id": listing_id, "buyer_id": buyer_id}
            )
        ).fetchone()
        return _row_to_offer(row) if row else None

    async def update(self, offer: Offer, db: AsyncSession) -> None:
        await db.execute(
            _UPDATE_OFFER_SQL,
            {
                "id": offer.id,
                "status": offer.status.value,
                "counter_amount_minor": offer.counter_amount_minor,
                "responded_at": offer.responded_at,
                "updated_at": offer.updated_at,
            },
        )

    async def expire_due(self, now: datetime, db: AsyncSession) -> list[str]:
        result = await db.execute(_EXPIRE_DUE_SQL, {"now": now})
        return [row.id for row in result.fetchall()]

    async def list_for_user(
        self,
        user_id: str,
        role: str,
        cursor_id: str | None,
        limit: int,
        db: AsyncSession,
    ) -> list[Offer]:
        sql = _LIST_RECEIVED_SQL if role == "received" else _LIST_SENT_SQL
        result = await db.execute(
            sql, {"user_id": user_id, "cursor_id": cursor_id, "limit": limit}
        )
        return [_row_to_offer(row) for row in result.fetchall()]

    async def expiry_stats(
        self, now: datetime, soon: datetime, db: AsyncSession
    ) -> OfferExpiryStats:
        row = (await db.execute(_EXPIRY_STATS_SQL, {"now": now, "soon": soon})).fetchone()
        return OfferExpiryStats(
            needs_expiry=row.needs_expiry or 0,
            expiring_soon=row.expiring_soon or 0,
            active=row.active or 0,
        )
