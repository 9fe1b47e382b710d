"""Offer domain model — pure dataclass, no SQLAlchemy dependency."""
from dataclasses import dataclass
from datetime import datetime

from src.esc_common.enums import OfferStatus


@dataclass
class Offer:
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    amount_minor: int
    expires_at: datetime
    status: OfferStatus = OfferStatus.SENT
    message: str | None = None
    counter_amount_minor: int | None = None
    responded_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == OfferStatus.SENT

    def is_expired_at(self, now: datetime) -> bool:
        """True once the TTL has passed, even before the sweep marks it EXPIRED."""
        return self.status == OfferStatus.EXPIRED or (
            self.status == OfferStatus.SENT and self.expires_at < now
        )
