"""Settlement arithmetic.

The platform takes a flat commission per settled booking, independent of
seat count. Whatever is left of the gross fare goes to the driver, floored
at zero.
"""

from decimal import Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


def gross_fare(seats: int, price_per_seat: Decimal) -> Decimal:
    return (Decimal(seats) * price_per_seat).quantize(CENT)


def net_payout(gross: Decimal, commission: Decimal) -> Decimal:
    """Driver's share of *gross* after *commission*; never negative."""
    if commission < ZERO:
        raise ValueError(f"commission must be non-negative, got {commission}")
    return max(gross - commission, ZERO).quantize(CENT)


def commission_taken(gross: Decimal, commission: Decimal) -> Decimal:
    """Commission actually retained, capped at the gross fare."""
    return min(commission, gross).quantize(CENT)
