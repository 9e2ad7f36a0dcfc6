"""Order Schemas - checkout input, admin status changes and order views.

Invariants:
    - At least one line; quantity 1-1000 per line
    - Clients send product/variant/quantity only; prices never accepted from the client
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.core.coupon_rules import normalize_code
from storefront.core.domain_types import OrderStatus, PaymentMethod


class OrderLineInput(BaseModel):
    product_id: UUID
    variant_id: UUID | None = None
    quantity: int = Field(1, ge=1, le=1000)


class OrderCreate(BaseModel):
    items: list[OrderLineInput] = Field(min_length=1, max_length=100)
    payment_method: PaymentMethod = PaymentMethod.PIX
    coupon_code: str | None = Field(None, max_length=50)
    customer_data: dict = {}

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return normalize_code(v) or None


class StatusUpdate(BaseModel):
    status: OrderStatus
    note: str | None = Field(None, max_length=2000)


class NoteCreate(BaseModel):
    text: str = Field(min_length=1, max_length=2000)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("note cannot be empty")
        return v


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    variant_id: UUID | None
    name: str
    price: float
    quantity: int
    delivery_type: str
    delivered: bool
    delivered_at: datetime | None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    status: OrderStatus
    payment_method: PaymentMethod
    subtotal_amount: float
    discount_amount: float
    total_amount: float
    payment_id: str | None
    payment_status: str | None
    checkout_url: str | None = None
    coupon_code: str | None
    product_assigned: bool
    customer_data: dict
    status_history: list[dict]
    items: list[OrderItemResponse]
    created_at: datetime
    updated_at: datetime


class UserStatsResponse(BaseModel):
    order_count: int
    total_spent: float
    products_acquired: int


class AdminOrderResponse(OrderResponse):
    notes: list[dict]
    username: str | None = None
    email: str | None = None
