"""Maintenance Service - periodic expiry of unpaid orders.

Invariants:
    - Only `pending` orders that have been pending longer than the window are expired
    - The window runs from the latest `pending` history entry (created_at when absent),
      so an order that went failed -> pending on a payment retry starts over
    - Each expiry goes through OrderService.transition (history entry, coupon release)
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.clock import ensure_utc
from storefront.core.domain_types import OrderStatus
from storefront.core.order_transitions import pending_since
from storefront.models.order import Order
from storefront.services.order_service import OrderService, SYSTEM_ACTOR

logger = logging.getLogger(__name__)


async def expire_pending_orders(
    db: AsyncSession, expiration_minutes: int, now: datetime | None = None,
) -> list[str]:
    """Expire stale pending orders; returns the ids expired."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=expiration_minutes)
    # pending_since >= created_at, so created_at narrows the candidates in SQL
    result = await db.execute(
        select(Order).where(
            Order.status == OrderStatus.PENDING.value,
            Order.created_at < cutoff,
        ),
    )
    orders = OrderService(db)
    expired = []
    for order in result.scalars().all():
        since = pending_since(order.status_history) or ensure_utc(order.created_at)
        if since >= cutoff:
            continue
        await orders.transition(
            order, OrderStatus.EXPIRED, SYSTEM_ACTOR,
            description=f"not paid within {expiration_minutes} minutes",
        )
        expired.append(str(order.id))
    await db.commit()
    logger.info(f"Expired {len(expired)} pending orders")
    return expired
