# src/esc_offer/domain/repository.py
"""Repository Protocol — dependency inversion for testability."""
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_offer.domain.models import Offer


@dataclass
class OfferExpiryStats:
    needs_expiry: int  # SENT and already past expires_at
    expiring_soon: int  # SENT and expiring within the window
    active: int  # SENT and not yet expired


class OfferRepositoryProtocol(Protocol):
    async def insert(self, offer: Offer, db: AsyncSession) -> None:
        """Raises DuplicateActiveOfferError if (listing, buyer) already has a SENT offer."""
        ...

    async def get_by_id(self, offer_id: str, db: AsyncSession) -> Offer | None: ...

    async def get_for_update(self, offer_id: str, db: AsyncSession) -> Offer | None: ...

    async def get_pending(
        self, listing_id: str, buyer_id: str, db: AsyncSession
    ) -> Offer | None: ...

    async def update(self, offer: Offer, db: AsyncSession) -> None: ...

    async def expire_due(self, now: datetime, db: AsyncSession) -> list[str]:
        """Mark every SENT offer with expires_at < now EXPIRED; return their ids."""
        ...

    async def list_for_user(
        self,
        user_id: str,
        role: str,
        cursor_id: str | None,
        limit: int,
        db: AsyncSession,
    ) -> list[Offer]: ...

    async def expiry_stats(
        self, now: datetime, soon: datetime, db: AsyncSession
    ) -> OfferExpiryStats: ...
