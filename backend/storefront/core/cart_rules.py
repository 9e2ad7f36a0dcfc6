"""Cart Rules - pure line matching and quantity handling for the shopping cart.

Invariants:
    - A cart holds at most one line per (product_id, variant_id) pair
    - Quantities are integers >= 1
"""

import math
from collections.abc import Iterable
from typing import Protocol, TypeVar
from uuid import UUID

from storefront.core.pricing import order_subtotal


class CartLine(Protocol):
    product_id: UUID
    variant_id: UUID | None
    price: float
    quantity: int


L = TypeVar("L", bound=CartLine)


def same_variant(a: UUID | str | None, b: UUID | str | None) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return str(a) == str(b)


def find_line(
    lines: Iterable[L], product_id: UUID | str, variant_id: UUID | str | None,
) -> L | None:
    for line in lines:
        if str(line.product_id) == str(product_id) and same_variant(line.variant_id, variant_id):
            return line
    return None


def coerce_quantity(value) -> int:
    """Floor positive numbers; anything else becomes 1."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if math.isnan(number) or number < 1:
        return 1
    return int(math.floor(number))


def merge_quantity(existing: int, added: int) -> int:
    return coerce_quantity(existing) + coerce_quantity(added)


def cart_total(lines: Iterable[CartLine]) -> float:
    return order_subtotal(lines)
