"""Domain Types - enums and sentinels shared across the storefront.

Invariants:
    - All valid states encoded as Enums - no raw string matching in services
    - MANUAL_DELIVERY_STOCK is the single source of truth for "unlimited" stock

Design Decisions:
    - str Enums: serialize to JSON and compare against DB string columns directly
    - NewType identity wrappers: zero runtime cost, type-checker support
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

UserId = NewType("UserId", UUID)
ProductId = NewType("ProductId", UUID)
VariantId = NewType("VariantId", UUID)
OrderId = NewType("OrderId", UUID)


# ─── Sentinels ───────────────────────────────────────────────────

# Stock reported for manual-delivery products: fulfilled by hand, never runs out.
MANUAL_DELIVERY_STOCK: int = 99999


# ─── Enums ───────────────────────────────────────────────────────

class UserRole(str, Enum):
    """Account roles. Only ADMIN reaches /admin routes."""
    ADMIN = "admin"
    USER = "user"
    DEVELOPER = "developer"


class OrderStatus(str, Enum):
    """Order lifecycle states - maps to the orders.status column."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXPIRED = "expired"


# Orders whose payment went through; counted as revenue and as purchases.
PAID_ORDER_STATUSES: tuple[str, ...] = (OrderStatus.PAID.value, OrderStatus.DELIVERED.value)


class PaymentMethod(str, Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    CARD = "card"


class DeliveryType(str, Enum):
    """AUTOMATIC consumes stock items on payment; MANUAL is fulfilled by an admin."""
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ProductStatus(str, Enum):
    """Operational status badge shown on the catalog."""
    UNDETECTED = "undetected"
    DETECTED = "detected"
    MAINTENANCE = "maintenance"
    BETA = "beta"
