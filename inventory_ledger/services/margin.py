"""Margin calculator.

The single implementation of the cost/price/margin relationship. Margin is
markup on cost: ``(price - cost) / cost * 100``. Every caller (financial
updates, item creation, API responses) goes through these functions.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


class MarginCategory:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 19.99 from expanding to binary noise
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """Round to the 2 decimal places the financial columns store."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def margin_from_cost_price(cost: Number, price: Number) -> Decimal:
    """Margin percentage for a cost/price pair.

    No margin is defined without a positive cost and a positive price, so
    either being zero or negative yields 0.
    """
    cost = to_decimal(cost)
    price = to_decimal(price)
    if cost <= ZERO or price <= ZERO:
        return ZERO
    return (price - cost) / cost * HUNDRED


def price_from_cost_margin(cost: Number, margin: Number) -> Decimal:
    """Selling price that yields ``margin`` percent over ``cost``."""
    cost = to_decimal(cost)
    margin = to_decimal(margin)
    if cost <= ZERO:
        return ZERO
    if margin <= ZERO:
        return cost
    return cost * (1 + margin / HUNDRED)


def margin_category(margin: Number, low_max: Number = 15, medium_max: Number = 30) -> str:
    margin = to_decimal(margin)
    if margin <= to_decimal(low_max):
        return MarginCategory.LOW
    if margin <= to_decimal(medium_max):
        return MarginCategory.MEDIUM
    return MarginCategory.HIGH
