"""Pricing - money arithmetic for cart and order lines.

Invariants:
    - All amounts rounded to cents with ROUND_HALF_UP before they leave this module
    - Prices always come from stored products, never from the client
"""

from decimal import Decimal, ROUND_HALF_UP
from collections.abc import Iterable
from typing import Protocol


class PricedLine(Protocol):
    price: float
    quantity: int


def round_money(amount: float | Decimal) -> float:
    return float(
        Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
    )


def line_total(price: float, quantity: int) -> float:
    return round_money(Decimal(str(price)) * quantity)


def order_subtotal(lines: Iterable[PricedLine]) -> float:
    """Sum of price * quantity over lines."""
    total = Decimal("0")
    for line in lines:
        total += Decimal(str(line.price)) * line.quantity
    return round_money(total)
