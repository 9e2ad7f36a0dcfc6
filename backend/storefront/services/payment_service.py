"""Payment Service - PIX and card checkout creation, throttled status polling and webhooks.

Invariants:
    - Only the buyer can create or poll payments for an order (404 otherwise)
    - PIX and card checkouts are created only for pending orders; a failed order returns
      to pending first
    - Starting a PIX clears any card checkout and vice versa: one attempt per order
    - Card checkouts need an 11-digit CPF, from the request or the buyer's profile
    - The gateway is polled at most once per payment_check_interval_seconds per order
    - Webhooks never trust the notification body: the payment is re-fetched from the gateway
    - Gateway statuses map through GATEWAY_STATUS_MAP; unmapped statuses only update
      payment_status

Design Decisions:
    - Gateway injected (PaymentGateway protocol): routes build the real client, tests a fake
    - Forbidden transitions from a webhook are logged and noted on the order instead of
      raised: the provider would otherwise retry the notification forever
"""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.clock import ensure_utc
from storefront.core.cpf import normalize_cpf
from storefront.core.domain_types import OrderStatus, PaymentMethod
from storefront.core.errors import (
    BusinessRuleError, ErrorContext, InvalidStatusTransitionError, ResourceNotFoundError,
)
from storefront.infrastructure.payment_gateway import GatewayPayment, PaymentGateway
from storefront.models.order import Order
from storefront.models.setting import Setting, PAYMENT_ACCESS_TOKEN_KEY
from storefront.models.user import User
from storefront.services.order_service import OrderService, SYSTEM_ACTOR

logger = logging.getLogger(__name__)

GATEWAY_STATUS_MAP: dict[str, OrderStatus] = {
    "approved": OrderStatus.PAID,
    "rejected": OrderStatus.FAILED,
    "cancelled": OrderStatus.CANCELLED,
    "refunded": OrderStatus.REFUNDED,
    "charged_back": OrderStatus.REFUNDED,
}

GATEWAY_ACTOR = "payment_gateway"


async def resolve_access_token(db: AsyncSession, fallback: str) -> str:
    """Admin-configured token wins over the environment setting."""
    result = await db.execute(
        select(Setting.value).where(Setting.key == PAYMENT_ACCESS_TOKEN_KEY),
    )
    stored = result.scalar_one_or_none()
    return stored or fallback


class PaymentService:
    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        notification_url: str | None = None,
        check_interval_seconds: int = 10,
    ):
        self.db = db
        self.gateway = gateway
        self.notification_url = notification_url or None
        self.check_interval = timedelta(seconds=check_interval_seconds)
        self.orders = OrderService(db)

    async def _payable(self, order_id: UUID, user: User) -> tuple[Order, bool]:
        """Load the buyer's order ready for payment. Returns (order, retried)."""
        order = await self.orders.get_for_user(order_id, user.id)
        if order.status == OrderStatus.FAILED.value:
            await self.orders.transition(
                order, OrderStatus.PENDING, str(user.id), description="payment retried",
            )
            return order, True
        if order.status != OrderStatus.PENDING.value:
            raise BusinessRuleError(
                f"Order is {order.status} and cannot be paid", "ORDER_NOT_PAYABLE",
                details={"status": order.status},
            )
        return order, False

    async def create_pix(self, order_id: UUID, user: User) -> Order:
        order, retried = await self._payable(order_id, user)
        if not retried and self._has_live_pix(order):
            return order

        name_parts = (user.name or "").split()
        payment = await self.gateway.create_pix_payment(
            amount=order.total_amount,
            description=f"Order #{order.id}",
            payer_email=user.email,
            external_reference=str(order.id),
            notification_url=self.notification_url,
            payer_first_name=name_parts[0] if name_parts else None,
            payer_last_name=" ".join(name_parts[1:]) or None,
            payer_cpf=user.cpf or None,
        )
        order.payment_method = PaymentMethod.PIX.value
        order.checkout_id = None
        order.checkout_url = None
        order.payment_id = payment.id
        order.payment_status = payment.status
        order.pix_qr_code = payment.qr_code
        order.pix_qr_code_base64 = payment.qr_code_base64
        order.pix_ticket_url = payment.ticket_url
        order.payment_expires_at = payment.expires_at
        order.payment_checked_at = datetime.now(timezone.utc)
        await self.db.commit()
        logger.info(
            "PIX payment attached to order",
            extra={"order_id": order.id, "payment_id": payment.id},
        )
        return order

    async def create_card_checkout(
        self, order_id: UUID, user: User, cpf: str | None = None,
        return_url: str | None = None,
    ) -> Order:
        """Open a hosted card checkout. The payment arrives later through the webhook."""
        order, retried = await self._payable(order_id, user)
        if not retried and order.checkout_id and not order.payment_id:
            return order

        payer_cpf = normalize_cpf(cpf or user.cpf)
        name_parts = (user.name or "").split()
        checkout = await self.gateway.create_card_checkout(
            amount=order.total_amount,
            description=f"Order #{order.id}",
            payer_email=user.email,
            external_reference=str(order.id),
            notification_url=self.notification_url,
            return_url=return_url or None,
            payer_first_name=name_parts[0] if name_parts else None,
            payer_last_name=" ".join(name_parts[1:]) or None,
            payer_cpf=payer_cpf,
        )
        order.payment_method = PaymentMethod.CREDIT_CARD.value
        order.checkout_id = checkout.id
        order.checkout_url = checkout.checkout_url
        order.payment_id = None
        order.payment_status = "pending"
        order.pix_qr_code = None
        order.pix_qr_code_base64 = None
        order.pix_ticket_url = None
        order.payment_expires_at = None
        await self.db.commit()
        logger.info(
            "Card checkout attached to order",
            extra={"order_id": order.id, "checkout_id": checkout.id},
        )
        return order

    @staticmethod
    def _has_live_pix(order: Order) -> bool:
        expires = ensure_utc(order.payment_expires_at)
        return bool(
            order.payment_id and order.pix_qr_code
            and order.payment_status == "pending"
            and expires and expires > datetime.now(timezone.utc)
        )

    async def check_status(self, order_id: UUID, user: User) -> tuple[Order, bool]:
        """Poll the gateway unless checked recently. Returns (order, polled)."""
        order = await self.orders.get_for_user(order_id, user.id)
        if not order.payment_id or order.status != OrderStatus.PENDING.value:
            return order, False

        now = datetime.now(timezone.utc)
        last = ensure_utc(order.payment_checked_at)
        if last and now - last < self.check_interval:
            return order, False

        order.payment_checked_at = now
        payment = await self.gateway.get_payment(order.payment_id)
        if payment is not None:
            await self.apply_gateway_status(order, payment)
        await self.db.commit()
        return order, True

    async def handle_webhook(self, notification_type: str | None, payment_id: str | None) -> dict:
        if notification_type != "payment":
            logger.info(f"Ignoring webhook of type {notification_type!r}")
            return {"received": True, "processed": False}
        if not payment_id:
            raise BusinessRuleError("Webhook without payment id", "WEBHOOK_INVALID")

        payment = await self.gateway.get_payment(str(payment_id))
        if payment is None:
            raise ResourceNotFoundError("Payment", str(payment_id))
        order = await self.orders.find_by_payment(payment.id, payment.external_reference)
        if order is None:
            raise ResourceNotFoundError("Order", payment.external_reference or payment.id)

        changed = await self.apply_gateway_status(order, payment)
        await self.db.commit()
        logger.info(
            f"Webhook processed: gateway status {payment.status}",
            extra={"order_id": order.id, "payment_id": payment.id},
        )
        return {
            "received": True,
            "processed": True,
            "order_id": str(order.id),
            "status": order.status,
            "changed": changed,
        }

    async def apply_gateway_status(self, order: Order, payment: GatewayPayment) -> bool:
        """Apply a gateway status to the order (no commit). True if the status changed."""
        order.payment_status = payment.status
        if not order.payment_id:
            order.payment_id = payment.id
        target = GATEWAY_STATUS_MAP.get(payment.status)
        if target is None:
            return False
        try:
            return await self.orders.transition(
                order, target, GATEWAY_ACTOR,
                description=f"payment {payment.status}",
            )
        except InvalidStatusTransitionError as e:
            context = ErrorContext(order_id=str(order.id))
            logger.error(
                f"Gateway reported {payment.status} for {order.status} order: {e.message}",
                extra={
                    "order_id": context.order_id, "payment_id": payment.id,
                    "error_code": e.code,
                },
            )
            OrderService._append_note(
                order,
                f"Gateway reported '{payment.status}' while order was '{order.status}'; "
                "review required",
                SYSTEM_ACTOR,
            )
            return False
