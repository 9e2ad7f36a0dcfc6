"""Stock Rules - availability math for automatic and manual delivery.

Invariants:
    - Manual-delivery stock is always MANUAL_DELIVERY_STOCK
    - Automatic-delivery stock is the count of unused stock items, nothing else
    - check_availability raises with both available and requested quantities
"""

from storefront.core.domain_types import DeliveryType, MANUAL_DELIVERY_STOCK
from storefront.core.errors import InsufficientStockError


def is_unlimited(delivery_type: DeliveryType | str | None) -> bool:
    return delivery_type is not None and DeliveryType(delivery_type) == DeliveryType.MANUAL


def effective_delivery_type(
    product_delivery: DeliveryType | str | None,
    variant_delivery: DeliveryType | str | None = None,
) -> DeliveryType:
    """Manual if either the product or the chosen variant is manual."""
    if is_unlimited(product_delivery) or is_unlimited(variant_delivery):
        return DeliveryType.MANUAL
    return DeliveryType.AUTOMATIC


def available_quantity(delivery_type: DeliveryType | str | None, unused_count: int) -> int:
    if is_unlimited(delivery_type):
        return MANUAL_DELIVERY_STOCK
    return max(unused_count, 0)


def check_availability(
    product_name: str,
    delivery_type: DeliveryType | str | None,
    unused_count: int,
    requested: int,
) -> int:
    """Return the available quantity or raise InsufficientStockError."""
    available = available_quantity(delivery_type, unused_count)
    if requested > available:
        raise InsufficientStockError(product_name, available, requested)
    return available
