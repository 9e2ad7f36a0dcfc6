"""Coupon Rules - pure usability checks and discount computation.

Invariants:
    - Codes are compared normalized (stripped, upper-cased)
    - Inactive or out-of-window coupons look identical to unknown ones (404)
    - max_uses == 0 means unlimited; max_amount == 0 means no discount cap
    - Discount never exceeds the cart total and is rounded to cents

Design Decisions:
    - Product- or category-restricted coupons discount only the eligible subtotal
      (ADR: a coupon for product A must not discount product B in the same cart)
    - Usage reservation is NOT here: it is an atomic UPDATE in coupon_service
"""

from datetime import datetime
from collections.abc import Iterable, Mapping
from typing import Protocol
from uuid import UUID

from storefront.core.clock import ensure_utc
from storefront.core.domain_types import DiscountType
from storefront.core.errors import CouponRejectedError
from storefront.core.pricing import round_money


class CouponLike(Protocol):
    code: str
    discount: float
    discount_type: str
    max_uses: int
    used_count: int
    min_amount: float
    max_amount: float
    start_date: datetime
    end_date: datetime
    is_active: bool
    product_ids: list
    category_ids: list


class CouponLine(Protocol):
    product_id: UUID
    price: float
    quantity: int


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def check_coupon_usable(coupon: CouponLike | None, now: datetime, code: str = "") -> None:
    """Raise CouponRejectedError unless the coupon can be applied right now."""
    label = normalize_code(code) or (coupon.code if coupon else "")
    not_found = CouponRejectedError(
        f"Coupon '{label}' not found or expired",
        "COUPON_NOT_FOUND", http_status=404,
    )
    if coupon is None or not coupon.is_active:
        raise not_found
    start, end = ensure_utc(coupon.start_date), ensure_utc(coupon.end_date)
    if (start and now < start) or (end and now > end):
        raise not_found
    if coupon.max_uses > 0 and coupon.used_count >= coupon.max_uses:
        raise CouponRejectedError(
            f"Coupon '{coupon.code}' has reached its usage limit",
            "COUPON_EXHAUSTED",
            details={"max_uses": coupon.max_uses},
        )


def is_restricted(coupon: CouponLike) -> bool:
    return bool(coupon.product_ids or coupon.category_ids)


def eligible_subtotal(
    coupon: CouponLike,
    lines: Iterable[CouponLine],
    categories: Mapping[str, str | None] | None = None,
) -> float:
    """Subtotal of the lines the coupon applies to (all lines when unrestricted).

    categories maps product id (str) to its category id (str) for
    category-restricted coupons.
    """
    products = {str(pid) for pid in (coupon.product_ids or [])}
    category_ids = {str(cid) for cid in (coupon.category_ids or [])}
    categories = categories or {}
    total = 0.0
    for line in lines:
        pid = str(line.product_id)
        if (
            not (products or category_ids)
            or pid in products
            or (categories.get(pid) is not None and str(categories[pid]) in category_ids)
        ):
            total += line.price * line.quantity
    return round_money(total)


def compute_discount(
    coupon: CouponLike, cart_total: float, eligible_total: float | None = None,
) -> float:
    """Discount in currency units for a cart.

    eligible_total is the portion of the cart the coupon applies to;
    None means the whole cart.
    """
    if cart_total < coupon.min_amount:
        raise CouponRejectedError(
            f"Minimum order amount for this coupon is {coupon.min_amount:.2f}",
            "COUPON_MINIMUM_NOT_MET",
            details={"min_amount": coupon.min_amount, "cart_total": cart_total},
        )
    base = cart_total if eligible_total is None else min(eligible_total, cart_total)
    if base <= 0:
        raise CouponRejectedError(
            "Coupon does not apply to any product in the cart",
            "COUPON_NOT_APPLICABLE",
        )

    if DiscountType(coupon.discount_type) == DiscountType.PERCENTAGE:
        discount = base * coupon.discount / 100
    else:
        discount = min(coupon.discount, base)

    if coupon.max_amount > 0:
        discount = min(discount, coupon.max_amount)
    return round_money(min(discount, cart_total))
