"""Customer-facing price formatting."""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal

from priceadjuster.errors import PolicyViolation

MINOR_UNIT = Decimal("0.01")
PRICE_FLOOR = Decimal("0.01")
_PRECISION = Decimal("0.0001")


def round_for_display(amount: Decimal, floor: Decimal = PRICE_FLOOR) -> Decimal:
    """Charm-round down: 100.00 -> 99.99, 28.40 -> 27.99, never below ``floor``."""
    candidate = amount.to_integral_value(rounding=ROUND_FLOOR) - MINOR_UNIT
    if candidate < floor:
        return floor.quantize(MINOR_UNIT)
    return candidate.quantize(MINOR_UNIT)


def to_reference_price(base_price: Decimal, multiplier: Decimal) -> Decimal:
    """Compare-at price ending in .99 derived from ``base_price * multiplier``.

    Always strictly above ``base_price``; when the charm price would not be,
    one minor unit above the base is used instead.
    """
    raw = (base_price * multiplier).quantize(_PRECISION)
    cents = (raw * 100 - 1).to_integral_value(rounding=ROUND_CEILING)
    reference = (cents / 100).quantize(MINOR_UNIT)
    if reference <= base_price:
        reference = (base_price + MINOR_UNIT).quantize(MINOR_UNIT, rounding=ROUND_CEILING)
    return reference


def apply_discount(base_price: Decimal, discount_percentage: Decimal) -> Decimal:
    return base_price * (Decimal(100) - discount_percentage) / Decimal(100)


def ensure_sale_below_reference(variant_id: str, sale_price: Decimal, reference_price: Decimal) -> None:
    if not sale_price < reference_price:
        raise PolicyViolation(variant_id, sale_price, reference_price)
