"""Read-only view of a marketplace listing, as far as escrow needs it."""
from dataclasses import dataclass


@dataclass
class ListingView:
    id: str
    seller_id: str
    price_minor: int
    is_active: bool
