"""Payment Routes - PIX and card checkout creation, status polling and the gateway webhook.

Invariants:
    - PIX, card checkout and polling are restricted to the order's buyer
    - The webhook is unauthenticated; it only trusts what the gateway API returns
      for the notified payment id
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import get_current_user, get_payment_gateway
from storefront.config import Settings, get_settings
from storefront.infrastructure.database import get_db
from storefront.infrastructure.payment_gateway import PaymentGateway
from storefront.models.order import Order
from storefront.models.user import User
from storefront.schemas.payment import (
    CardCheckoutRequest, CardCheckoutResponse, PaymentStatusResponse,
    PixRequest, PixResponse, WebhookPayload,
)
from storefront.services.payment_service import PaymentService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


def _service(db: AsyncSession, gateway: PaymentGateway, settings: Settings) -> PaymentService:
    return PaymentService(
        db, gateway,
        notification_url=settings.payment_notification_url,
        check_interval_seconds=settings.payment_check_interval_seconds,
    )


def _pix_view(order: Order) -> PixResponse:
    return PixResponse(
        order_id=order.id,
        payment_id=order.payment_id,
        payment_status=order.payment_status,
        amount=order.total_amount,
        qr_code=order.pix_qr_code,
        qr_code_base64=order.pix_qr_code_base64,
        ticket_url=order.pix_ticket_url,
        expires_at=order.payment_expires_at,
    )


@router.post("/pix", response_model=PixResponse)
async def create_pix(
    body: PixRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    order = await _service(db, gateway, settings).create_pix(body.order_id, user)
    return _pix_view(order)


@router.post("/card", response_model=CardCheckoutResponse)
async def create_card_checkout(
    body: CardCheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    order = await _service(db, gateway, settings).create_card_checkout(
        body.order_id, user, cpf=body.cpf, return_url=settings.payment_return_url,
    )
    return CardCheckoutResponse(
        order_id=order.id,
        checkout_id=order.checkout_id,
        checkout_url=order.checkout_url,
        external_reference=str(order.id),
        payment_status=order.payment_status,
        amount=order.total_amount,
    )


@router.get("/orders/{order_id}/status", response_model=PaymentStatusResponse)
async def payment_status(
    order_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    order, checked = await _service(db, gateway, settings).check_status(order_id, user)
    return PaymentStatusResponse(
        order_id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        checked=checked,
    )


@router.post("/webhook")
async def payment_webhook(
    body: WebhookPayload,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    payment_id = str(body.data.id) if body.data.id is not None else None
    return await _service(db, gateway, settings).handle_webhook(body.type, payment_id)
