"""Integer arithmetic for minor-unit amounts.

All prices and payment amounts are int minor units (pesewas, cents).
No float, no Decimal.
"""

BPS_DENOMINATOR = 10_000


def split_by_bps(total_minor: int, seller_bps: int) -> tuple[int, int]:
    """Split `total_minor` into (seller_share, buyer_share) by basis points.

    Seller share rounds down; the buyer keeps the remainder, so the two
    parts always sum to the total.
    """
    if not (0 <= seller_bps <= BPS_DENOMINATOR):
        raise ValueError(f"seller_bps must be between 0 and {BPS_DENOMINATOR}, got {seller_bps}")
    seller = total_minor * seller_bps // BPS_DENOMINATOR
    return seller, total_minor - seller
