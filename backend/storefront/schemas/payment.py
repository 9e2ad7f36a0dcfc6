"""Payment Schemas - PIX and card checkout creation, status polling and gateway webhooks."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from storefront.core.domain_types import OrderStatus


class PixRequest(BaseModel):
    order_id: UUID


class PixResponse(BaseModel):
    order_id: UUID
    payment_id: str
    payment_status: str | None
    amount: float
    qr_code: str | None
    qr_code_base64: str | None
    ticket_url: str | None
    expires_at: datetime | None


class CardCheckoutRequest(BaseModel):
    """cpf falls back to the buyer's profile when omitted."""
    order_id: UUID
    cpf: str | None = None


class CardCheckoutResponse(BaseModel):
    order_id: UUID
    checkout_id: str
    checkout_url: str
    external_reference: str
    payment_status: str | None
    amount: float


class PaymentStatusResponse(BaseModel):
    order_id: UUID
    status: OrderStatus
    payment_status: str | None
    checked: bool


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | int | None = None


class WebhookPayload(BaseModel):
    """Gateway notification. Only type == "payment" is acted on."""
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    action: str | None = None
    data: WebhookData = WebhookData()
