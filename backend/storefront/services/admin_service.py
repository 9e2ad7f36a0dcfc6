"""Admin Service - dashboard statistics and admin-editable settings.

Invariants:
    - Revenue counts only orders that were paid (paid, delivered)
    - The stored payment access token is never returned in full
"""

import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.domain_types import OrderStatus, PAID_ORDER_STATUSES
from storefront.core.pricing import round_money
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.setting import Setting, PAYMENT_ACCESS_TOKEN_KEY
from storefront.models.user import User

logger = logging.getLogger(__name__)

TOP_LIMIT = 5


def mask_secret(value: str | None) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


class AdminService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, model) -> int:
        return (await self.db.execute(select(func.count()).select_from(model))).scalar_one()

    async def stats(self) -> dict:
        per_status = {status.value: 0 for status in OrderStatus}
        result = await self.db.execute(
            select(Order.status, func.count()).group_by(Order.status),
        )
        for status, count in result.all():
            per_status[status] = count

        revenue = (await self.db.execute(
            select(func.coalesce(func.sum(Order.total_amount), 0.0))
            .where(Order.status.in_(PAID_ORDER_STATUSES)),
        )).scalar_one()

        units = func.sum(OrderItem.quantity)
        product_revenue = func.sum(OrderItem.price * OrderItem.quantity)
        top_products = await self.db.execute(
            select(OrderItem.product_id, func.min(OrderItem.name), units, product_revenue)
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status.in_(PAID_ORDER_STATUSES))
            .group_by(OrderItem.product_id)
            .order_by(units.desc())
            .limit(TOP_LIMIT),
        )

        uses = func.count(Order.id)
        top_coupons = await self.db.execute(
            select(Order.coupon_code, uses, func.sum(Order.discount_amount))
            .where(Order.coupon_code.is_not(None), Order.status.in_(PAID_ORDER_STATUSES))
            .group_by(Order.coupon_code)
            .order_by(uses.desc())
            .limit(TOP_LIMIT),
        )

        return {
            "users": await self._count(User),
            "products": await self._count(Product),
            "orders": await self._count(Order),
            "orders_by_status": per_status,
            "revenue": round_money(revenue or 0),
            "top_products": [
                {
                    "product_id": str(product_id),
                    "name": name,
                    "units": int(sold or 0),
                    "revenue": round_money(earned or 0),
                }
                for product_id, name, sold, earned in top_products.all()
            ],
            "top_coupons": [
                {"code": code, "uses": count, "total_discount": round_money(total or 0)}
                for code, count, total in top_coupons.all()
            ],
        }

    # ─── Settings ────────────────────────────────────────────────

    async def get_setting(self, key: str) -> str | None:
        result = await self.db.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()
        return setting.value if setting else None

    async def put_setting(self, key: str, value: str) -> None:
        result = await self.db.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()
        if setting is None:
            self.db.add(Setting(key=key, value=value))
        else:
            setting.value = value
        await self.db.commit()
        logger.info(f"Setting updated: {key}")

    async def payment_settings(self) -> dict:
        token = await self.get_setting(PAYMENT_ACCESS_TOKEN_KEY)
        return {"payment_access_token": mask_secret(token), "configured": bool(token)}

    async def update_payment_token(self, token: str) -> dict:
        await self.put_setting(PAYMENT_ACCESS_TOKEN_KEY, token.strip())
        return await self.payment_settings()
