"""Coupon Service - coupon lookup, validation quotes, atomic usage reservation and admin CRUD.

Invariants:
    - Usage reserved only by UPDATE ... WHERE max_uses = 0 OR used_count < max_uses;
      rowcount 0 means another checkout took the last use (COUPON_EXHAUSTED)
    - release() never drives used_count below zero
    - Codes unique and upper-cased (409 on duplicates)
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.clock import ensure_utc
from storefront.core.coupon_rules import (
    check_coupon_usable, compute_discount, eligible_subtotal, is_restricted,
    normalize_code,
)
from storefront.core.errors import (
    CouponRejectedError, DuplicateResourceError, ResourceNotFoundError,
)
from storefront.core.pricing import round_money
from storefront.models.coupon import Coupon, DEFAULT_VALIDITY
from storefront.models.product import Product
from storefront.schemas.coupon import CouponCreate, CouponUpdate, CouponValidation

logger = logging.getLogger(__name__)


class CouponService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_code(self, code: str) -> Coupon | None:
        result = await self.db.execute(
            select(Coupon).where(Coupon.code == normalize_code(code)),
        )
        return result.scalar_one_or_none()

    async def get_usable(self, code: str, now: datetime | None = None) -> Coupon:
        coupon = await self.find_by_code(code)
        check_coupon_usable(coupon, now or datetime.now(timezone.utc), code)
        return coupon

    @staticmethod
    def quote(
        coupon: Coupon, cart_total: float, eligible_total: float | None = None,
    ) -> CouponValidation:
        """Discount a coupon would give, without reserving a use."""
        discount = compute_discount(coupon, cart_total, eligible_total)
        return CouponValidation(
            code=coupon.code,
            description=coupon.description,
            discount_type=coupon.discount_type,
            discount=coupon.discount,
            discount_amount=discount,
            final_total=round_money(max(cart_total - discount, 0)),
        )

    async def eligible_total(self, coupon: Coupon, lines: list) -> float | None:
        """Eligible subtotal for restricted coupons; None when the coupon covers everything."""
        if not is_restricted(coupon):
            return None
        categories: dict[str, str | None] = {}
        if coupon.category_ids:
            product_ids = {line.product_id for line in lines}
            result = await self.db.execute(
                select(Product.id, Product.category_id).where(Product.id.in_(product_ids)),
            )
            categories = {
                str(pid): str(cid) if cid else None for pid, cid in result.all()
            }
        return eligible_subtotal(coupon, lines, categories)

    async def quote_for_cart(
        self, code: str, cart_total: float, cart_lines: list,
    ) -> CouponValidation:
        coupon = await self.get_usable(code)
        eligible = await self.eligible_total(coupon, cart_lines) if cart_lines else None
        return self.quote(coupon, cart_total, eligible)

    async def reserve_use(self, coupon: Coupon) -> None:
        """Atomically take one use (no commit)."""
        result = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                Coupon.is_active.is_(True),
                or_(Coupon.max_uses == 0, Coupon.used_count < Coupon.max_uses),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            raise CouponRejectedError(
                f"Coupon '{coupon.code}' has reached its usage limit",
                "COUPON_EXHAUSTED",
            )
        await self.db.refresh(coupon, ["used_count"])
        logger.info(f"Coupon use reserved: {coupon.code} ({coupon.used_count})")

    async def release_use(self, coupon_id: UUID) -> None:
        """Give back one use (no commit)."""
        await self.db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.used_count > 0)
            .values(used_count=Coupon.used_count - 1)
            .execution_options(synchronize_session=False),
        )

    # ─── Admin CRUD ──────────────────────────────────────────────

    async def list_coupons(self) -> list[Coupon]:
        result = await self.db.execute(select(Coupon).order_by(Coupon.created_at.desc()))
        return list(result.scalars().all())

    async def get(self, coupon_id: UUID) -> Coupon:
        coupon = await self.db.get(Coupon, coupon_id)
        if not coupon:
            raise ResourceNotFoundError("Coupon", str(coupon_id))
        return coupon

    async def create(self, body: CouponCreate, created_by: UUID | None = None) -> Coupon:
        if await self.find_by_code(body.code):
            raise DuplicateResourceError("Coupon", "code", body.code)
        now = datetime.now(timezone.utc)
        start = ensure_utc(body.start_date) or now
        coupon = Coupon(
            code=body.code,
            description=body.description or "",
            discount=body.discount,
            discount_type=body.discount_type.value,
            max_uses=body.max_uses or 0,
            used_count=0,
            min_amount=body.min_amount or 0.0,
            max_amount=body.max_amount or 0.0,
            start_date=start,
            end_date=ensure_utc(body.end_date) or start + DEFAULT_VALIDITY,
            is_active=True if body.is_active is None else body.is_active,
            product_ids=[str(p) for p in body.product_ids or []],
            category_ids=[str(c) for c in body.category_ids or []],
            created_by=created_by,
        )
        self.db.add(coupon)
        await self.db.commit()
        logger.info(f"Coupon created: {coupon.code}")
        return coupon

    async def update(self, coupon_id: UUID, body: CouponUpdate) -> Coupon:
        coupon = await self.get(coupon_id)
        data = body.model_dump(exclude_unset=True)
        if data.get("code") and data["code"] != coupon.code:
            if await self.find_by_code(data["code"]):
                raise DuplicateResourceError("Coupon", "code", data["code"])
        for field_name, value in data.items():
            if value is None:
                continue
            if field_name in ("product_ids", "category_ids"):
                value = [str(v) for v in value]
            elif field_name in ("start_date", "end_date"):
                value = ensure_utc(value)
            elif hasattr(value, "value"):
                value = value.value
            setattr(coupon, field_name, value)
        if ensure_utc(coupon.end_date) <= ensure_utc(coupon.start_date):
            raise CouponRejectedError(
                "end_date must be after start_date", "COUPON_INVALID_WINDOW",
            )
        await self.db.commit()
        return coupon

    async def delete(self, coupon_id: UUID) -> None:
        coupon = await self.get(coupon_id)
        await self.db.delete(coupon)
        await self.db.commit()
        logger.info(f"Coupon deleted: {coupon.code}")
