"""Stock Service - stock item CRUD, availability checks and atomic claims.

Invariants:
    - A stock item is claimed only by the UPDATE ... WHERE is_used = false that flips it;
      rowcount decides ownership, never a prior SELECT
    - A short claim releases every row it flipped, then raises InsufficientStockError
    - Products with variants require a variant; products without variants reject one
    - Denormalized stock on product/variant refreshed after every change (refresh_stock_counts)
    - Duplicate codes (in the request or already stored) are skipped and reported

Design Decisions:
    - Per-row conditional UPDATE over SELECT FOR UPDATE: portable to SQLite in tests,
      and concurrent claimers simply move on to the next candidate row
    - claim()/release()/refresh_stock_counts() never commit: callers compose them into
      their own transaction (order fulfilment, admin assignment)
"""

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.domain_types import DeliveryType, MANUAL_DELIVERY_STOCK
from storefront.core.errors import (
    BusinessRuleError, InsufficientStockError, ResourceNotFoundError,
)
from storefront.core.stock_rules import (
    available_quantity, check_availability, effective_delivery_type,
)
from storefront.models.product import Product, ProductVariant
from storefront.models.stock_item import StockItem
from storefront.services.user_service import UserService

logger = logging.getLogger(__name__)

# Candidate rows fetched per claim round beyond the quantity still needed
_CLAIM_HEADROOM = 5
_CLAIM_ROUNDS = 3


class StockService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Lookup ──────────────────────────────────────────────────

    async def get_product(self, product_id: UUID) -> Product:
        product = await self.db.get(Product, product_id)
        if not product:
            raise ResourceNotFoundError("Product", str(product_id))
        return product

    def resolve_variant(
        self, product: Product, variant_id: UUID | None,
    ) -> ProductVariant | None:
        if product.variants:
            if variant_id is None:
                raise BusinessRuleError(
                    f"Product '{product.name}' requires a variant", "VARIANT_REQUIRED",
                )
            variant = product.find_variant(variant_id)
            if variant is None:
                raise ResourceNotFoundError("Variant", str(variant_id))
            return variant
        if variant_id is not None:
            raise BusinessRuleError(
                f"Product '{product.name}' has no variants", "VARIANT_NOT_ALLOWED",
            )
        return None

    async def count_unused(self, product_id: UUID, variant_id: UUID | None) -> int:
        query = select(func.count()).select_from(StockItem).where(
            StockItem.product_id == product_id,
            StockItem.is_used.is_(False),
        )
        query = query.where(
            StockItem.variant_id.is_(None) if variant_id is None
            else StockItem.variant_id == variant_id,
        )
        return (await self.db.execute(query)).scalar_one()

    async def available(self, product: Product, variant: ProductVariant | None) -> int:
        delivery = effective_delivery_type(
            product.delivery_type, variant.delivery_type if variant else None,
        )
        if delivery == DeliveryType.MANUAL:
            return MANUAL_DELIVERY_STOCK
        return await self.count_unused(product.id, variant.id if variant else None)

    async def check(
        self, product_id: UUID, variant_id: UUID | None, quantity: int,
    ) -> int:
        """Return available quantity or raise InsufficientStockError."""
        product = await self.get_product(product_id)
        variant = self.resolve_variant(product, variant_id)
        delivery = effective_delivery_type(
            product.delivery_type, variant.delivery_type if variant else None,
        )
        unused = 0
        if delivery == DeliveryType.AUTOMATIC:
            unused = await self.count_unused(product.id, variant.id if variant else None)
        return check_availability(line_name(product, variant), delivery, unused, quantity)

    # ─── Admin CRUD ──────────────────────────────────────────────

    async def add_codes(
        self,
        product_id: UUID,
        variant_id: UUID | None,
        codes: list[str],
        metadata: dict | None = None,
    ) -> tuple[int, list[str], int]:
        """Insert new codes. Returns (added, duplicates, refreshed stock)."""
        product = await self.get_product(product_id)
        variant = self.resolve_variant(product, variant_id)

        unique = list(OrderedDict.fromkeys(codes))
        existing = await self.db.execute(
            select(StockItem.code).where(StockItem.code.in_(unique)),
        )
        stored = set(existing.scalars().all())

        # each skipped code reported once, in order of its first skip
        skipped: OrderedDict[str, None] = OrderedDict()
        seen: set[str] = set()
        for code in codes:
            if code in seen or code in stored:
                skipped[code] = None
            seen.add(code)
        duplicates = list(skipped)

        new_codes = [c for c in unique if c not in stored]
        for code in new_codes:
            self.db.add(StockItem(
                product_id=product.id,
                variant_id=variant.id if variant else None,
                code=code,
                extra=dict(metadata or {}),
            ))
        await self.db.flush()
        stock = await self.refresh_stock_counts(product)
        await self.db.commit()
        logger.info(
            f"Added {len(new_codes)} stock items ({len(duplicates)} duplicates skipped)",
            extra={"product_id": product.id},
        )
        return len(new_codes), duplicates, stock

    async def list_items(
        self,
        page: int,
        limit: int,
        product_id: UUID | None = None,
        variant_id: UUID | None = None,
        is_used: bool | None = None,
    ) -> tuple[list[StockItem], int]:
        conditions = []
        if product_id is not None:
            conditions.append(StockItem.product_id == product_id)
        if variant_id is not None:
            conditions.append(StockItem.variant_id == variant_id)
        if is_used is not None:
            conditions.append(StockItem.is_used.is_(is_used))
        total = (await self.db.execute(
            select(func.count()).select_from(StockItem).where(*conditions),
        )).scalar_one()
        result = await self.db.execute(
            select(StockItem).where(*conditions)
            .order_by(StockItem.created_at.desc())
            .limit(limit).offset((page - 1) * limit),
        )
        return list(result.scalars().all()), total

    async def delete_item(self, item_id: UUID) -> None:
        item = await self.db.get(StockItem, item_id)
        if not item:
            raise ResourceNotFoundError("StockItem", str(item_id))
        if item.is_used:
            raise BusinessRuleError(
                "Stock item already delivered and cannot be deleted", "STOCK_ITEM_USED",
            )
        product = await self.get_product(item.product_id)
        await self.db.delete(item)
        await self.db.flush()
        await self.refresh_stock_counts(product)
        await self.db.commit()

    async def delete_unused_for_product(self, product_id: UUID) -> int:
        """Remove a product's unused stock (no commit)."""
        result = await self.db.execute(
            delete(StockItem).where(
                StockItem.product_id == product_id, StockItem.is_used.is_(False),
            ).execution_options(synchronize_session=False),
        )
        return result.rowcount or 0

    # ─── Claims ──────────────────────────────────────────────────

    async def claim(
        self,
        product: Product,
        variant: ProductVariant | None,
        quantity: int,
        user_id: UUID,
        order_id: UUID | None = None,
    ) -> list[StockItem]:
        """Atomically claim `quantity` unused items for user_id (no commit)."""
        variant_id = variant.id if variant else None
        now = datetime.now(timezone.utc)
        claimed: list[UUID] = []

        for _ in range(_CLAIM_ROUNDS):
            needed = quantity - len(claimed)
            if needed <= 0:
                break
            candidates = await self._candidate_ids(
                product.id, variant_id, needed + _CLAIM_HEADROOM, exclude=claimed,
            )
            if not candidates:
                break
            for item_id in candidates:
                if len(claimed) >= quantity:
                    break
                result = await self.db.execute(
                    update(StockItem)
                    .where(StockItem.id == item_id, StockItem.is_used.is_(False))
                    .values(
                        is_used=True, assigned_to=user_id,
                        assigned_at=now, order_id=order_id,
                    )
                    .execution_options(synchronize_session=False),
                )
                if result.rowcount == 1:
                    claimed.append(item_id)

        if len(claimed) < quantity:
            await self.release(claimed)
            available = await self.count_unused(product.id, variant_id)
            logger.warning(
                f"Short stock claim: {len(claimed)}/{quantity}, released",
                extra={"product_id": product.id, "order_id": order_id},
            )
            raise InsufficientStockError(
                line_name(product, variant), available, quantity,
            )

        result = await self.db.execute(
            select(StockItem).where(StockItem.id.in_(claimed))
            .execution_options(populate_existing=True),
        )
        return list(result.scalars().all())

    async def release(self, item_ids: list[UUID]) -> None:
        if not item_ids:
            return
        await self.db.execute(
            update(StockItem).where(StockItem.id.in_(item_ids))
            .values(is_used=False, assigned_to=None, assigned_at=None, order_id=None)
            .execution_options(synchronize_session=False),
        )

    async def _candidate_ids(
        self, product_id: UUID, variant_id: UUID | None, limit: int, exclude: list[UUID],
    ) -> list[UUID]:
        query = select(StockItem.id).where(
            StockItem.product_id == product_id,
            StockItem.is_used.is_(False),
            StockItem.variant_id.is_(None) if variant_id is None
            else StockItem.variant_id == variant_id,
        )
        if exclude:
            query = query.where(StockItem.id.not_in(exclude))
        result = await self.db.execute(
            query.order_by(StockItem.created_at).limit(limit)
            .with_for_update(skip_locked=True),
        )
        return list(result.scalars().all())

    async def assign_to_user(
        self,
        user_id: UUID,
        product_id: UUID,
        variant_id: UUID | None,
        quantity: int,
    ) -> list[StockItem]:
        """Admin hand-out of codes outside an order."""
        product = await self.get_product(product_id)
        variant = self.resolve_variant(product, variant_id)
        users = UserService(self.db)
        await users.get(user_id)
        items = await self.claim(product, variant, quantity, user_id)
        await users.grant_products(user_id, [product.id])
        await self.refresh_stock_counts(product)
        await self.db.commit()
        logger.info(
            f"Assigned {len(items)} stock items manually",
            extra={"user_id": user_id, "product_id": product.id},
        )
        return items

    # ─── Denormalized counts ─────────────────────────────────────

    async def refresh_stock_counts(self, product: Product) -> int:
        """Recompute product/variant stock columns (no commit). Returns product stock."""
        if product.variants:
            total = 0
            for variant in product.variants:
                delivery = effective_delivery_type(product.delivery_type, variant.delivery_type)
                unused = 0
                if delivery == DeliveryType.AUTOMATIC:
                    unused = await self.count_unused(product.id, variant.id)
                variant.stock = available_quantity(delivery, unused)
                total += variant.stock
            product.stock = min(total, MANUAL_DELIVERY_STOCK)
        else:
            delivery = effective_delivery_type(product.delivery_type)
            unused = 0
            if delivery == DeliveryType.AUTOMATIC:
                unused = await self.count_unused(product.id, None)
            product.stock = available_quantity(delivery, unused)
        await self.db.flush()
        return product.stock

    # ─── Owner view ──────────────────────────────────────────────

    async def assigned_to_user(
        self, user_id: UUID, page: int, limit: int,
    ) -> tuple[list[dict], int]:
        """Assigned codes grouped by (product, variant), newest group first."""
        result = await self.db.execute(
            select(StockItem).where(StockItem.assigned_to == user_id)
            .order_by(StockItem.assigned_at.desc()),
        )
        groups: OrderedDict[tuple, dict] = OrderedDict()
        products: dict[UUID, Product | None] = {}
        for item in result.scalars().all():
            key = (item.product_id, item.variant_id)
            if key not in groups:
                if item.product_id not in products:
                    products[item.product_id] = await self.db.get(Product, item.product_id)
                product = products[item.product_id]
                variant = product.find_variant(item.variant_id) if product and item.variant_id else None
                groups[key] = {
                    "product_id": str(item.product_id),
                    "product_name": product.name if product else "",
                    "variant_id": str(item.variant_id) if item.variant_id else None,
                    "variant_name": variant.name if variant else None,
                    "items": [],
                }
            groups[key]["items"].append({
                "id": str(item.id),
                "code": item.code,
                "assigned_at": item.assigned_at.isoformat() if item.assigned_at else None,
                "order_id": str(item.order_id) if item.order_id else None,
            })
        all_groups = list(groups.values())
        start = (page - 1) * limit
        return all_groups[start:start + limit], len(all_groups)


def line_name(product: Product, variant: ProductVariant | None) -> str:
    return f"{product.name} - {variant.name}" if variant else product.name
