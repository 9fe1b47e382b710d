"""ListingService — raw SQL against the marketplace `listings` table.

Only PUBLISHED listings accept offers. SOLD is set while an escrow
transaction is active (or after it released) and reverted to PUBLISHED
when a refunded transaction is closed.
"""
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_listing.domain.models import ListingView

_ACTIVE_STATUS = "PUBLISHED"
_SOLD_STATUS = "SOLD"

_GET_LISTING_SQL = text("""
    SELECT id, seller_id, price_minor, status
    FROM listings
    WHERE id = :listing_id
""")

_SET_STATUS_SQL = text("""
    UPDATE listings SET status = :status, updated_at = NOW()
    WHERE id = :listing_id
""")


def _row_to_listing(row: Any) -> ListingView:
    return ListingView(
        id=str(row.id),
        seller_id=str(row.seller_id),
        price_minor=int(row.price_minor),
        is_active=row.status == _ACTIVE_STATUS,
    )


class ListingService:
    async def get_listing(self, listing_id: str, db: AsyncSession) -> ListingView | None:
        row = (await db.execute(_GET_LISTING_SQL, {"listing_id": listing_id})).fetchone()
        return _row_to_listing(row) if row else None

    async def mark_sold(self, listing_id: str, db: AsyncSession) -> None:
        await db.execute(_SET_STATUS_SQL, {"listing_id": listing_id, "status": _SOLD_STATUS})

    async def mark_available(self, listing_id: str, db: AsyncSession) -> None:
        await db.execute(_SET_STATUS_SQL, {"listing_id": listing_id, "status": _ACTIVE_STATUS})
