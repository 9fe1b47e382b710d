# src/esc_offer/application/schemas.py
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from src.esc_common.enums import OfferAction, OfferStatus
from src.esc_offer.domain.models import Offer
from src.esc_offer.domain.repository import OfferExpiryStats


class SubmitOfferRequest(BaseModel):
    listing_id: str = Field(..., min_length=1)
    amount_minor: int
    message: str | None = None


class RespondOfferRequest(BaseModel):
    action: OfferAction
    counter_amount_minor: int | None = None

    @model_validator(mode="after")
    def counter_amount_only_for_counter(self) -> "RespondOfferRequest":
        if self.action == OfferAction.COUNTER and self.counter_amount_minor is None:
            raise ValueError("counter_amount_minor is required for COUNTER")
        return self


class OfferResponse(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    amount_minor: int
    status: OfferStatus
    message: str | None = None
    counter_amount_minor: int | None = None
    expires_at: datetime
    responded_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, offer: Offer) -> "OfferResponse":
        return cls(
            id=offer.id,
            listing_id=offer.listing_id,
            buyer_id=offer.buyer_id,
            seller_id=offer.seller_id,
            amount_minor=offer.amount_minor,
            status=offer.status,
            message=offer.message,
            counter_amount_minor=offer.counter_amount_minor,
            expires_at=offer.expires_at,
            responded_at=offer.responded_at,
            created_at=offer.created_at,
        )


class RespondOfferResponse(BaseModel):
    offer: OfferResponse
    transaction_id: str | None = None


class OfferListResponse(BaseModel):
    items: list[OfferResponse]
    next_cursor: str | None
    has_more: bool


class ExpireOffersResponse(BaseModel):
    expired_count: int
    offer_ids: list[str]


class OfferStatsResponse(BaseModel):
    needs_expiry: int
    expiring_soon: int
    active: int

    @classmethod
    def from_domain(cls, stats: OfferExpiryStats) -> "OfferStatsResponse":
        return cls(
            needs_expiry=stats.needs_expiry,
            expiring_soon=stats.expiring_soon,
            active=stats.active,
        )
