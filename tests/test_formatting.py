from decimal import Decimal

import pytest

from priceadjuster.errors import PolicyViolation
from priceadjuster.logic.formatting import (
    PRICE_FLOOR,
    apply_discount,
    ensure_sale_below_reference,
    round_for_display,
    to_reference_price,
)

D = Decimal


def test_round_for_display_charm_rounds_down():
    assert round_for_display(D("100.00")) == D("99.99")
    assert round_for_display(D("28.00")) == D("27.99")
    assert round_for_display(D("28.75")) == D("27.99")


def test_round_for_display_clamps_to_floor():
    assert round_for_display(D("0.50")) == PRICE_FLOOR
    assert round_for_display(D("1.00")) == D("0.99")
    assert round_for_display(D("0.99")) == PRICE_FLOOR


@pytest.mark.parametrize("amount", ["0.01", "0.99", "1.00", "7.35", "19.99", "250.00", "1234.56"])
def test_round_for_display_stays_between_floor_and_input(amount):
    result = round_for_display(D(amount))
    assert PRICE_FLOOR <= result <= D(amount)
    assert result == result.quantize(D("0.01"))


def test_reference_price_charm_formula():
    assert to_reference_price(D("40.00"), D("2.0")) == D("79.99")
    assert to_reference_price(D("19.99"), D("1.5")) == D("29.98")


@pytest.mark.parametrize(
    "base,multiplier",
    [("0.01", "1.5"), ("1.00", "1.001"), ("9.99", "1.2"), ("27.99", "2.858"), ("500.00", "3.0")],
)
def test_reference_price_is_strictly_above_base(base, multiplier):
    assert to_reference_price(D(base), D(multiplier)) > D(base)


def test_reference_price_bumps_one_cent_when_charm_would_not_exceed_base():
    assert to_reference_price(D("1.00"), D("1.001")) == D("1.01")


def test_reference_price_survives_round_trip_through_stored_amount():
    # Re-deriving the multiplier from a stored amount must give the same charm price.
    assert to_reference_price(D("27.99"), D("80.00") / D("27.99")) == D("79.99")


def test_apply_discount():
    assert apply_discount(D("40.00"), D("30")) == D("28.00")


def test_sale_must_be_below_reference():
    ensure_sale_below_reference("V1", D("27.99"), D("79.99"))
    with pytest.raises(PolicyViolation) as exc_info:
        ensure_sale_below_reference("V1", D("79.99"), D("79.99"))
    assert exc_info.value.variant_id == "V1"
