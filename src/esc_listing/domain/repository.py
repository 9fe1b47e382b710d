"""ListingService Protocol — the marketplace's listings, seen from escrow.

The listings table is owned by the surrounding application. Escrow reads
seller/price/availability and flips availability when a sale starts
(mark_sold) or is unwound by a refund (mark_available).
"""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_listing.domain.models import ListingView


class ListingServiceProtocol(Protocol):
    async def get_listing(self, listing_id: str, db: AsyncSession) -> ListingView | None: ...

    async def mark_sold(self, listing_id: str, db: AsyncSession) -> None: ...

    async def mark_available(self, listing_id: str, db: AsyncSession) -> None: ...
