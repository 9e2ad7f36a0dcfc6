"""Order Service - checkout, status lifecycle, fulfilment and admin order handling.

Invariants:
    - Prices, subtotal, discount and total computed here from stored products/coupons
    - Every status change goes through core.order_transitions.check_transition and
      appends a status_history entry
    - Entering `paid` runs fulfilment at most once (guarded by product_assigned)
    - Fulfilment claims stock atomically per automatic line; a short claim leaves that
      line undelivered and adds an order note for manual follow-up
    - When every line is delivered the order moves to `delivered`
    - Entering `cancelled` or `expired` gives the reserved coupon use back

Design Decisions:
    - transition() never commits: webhook, admin and cron paths compose it into their
      own transaction and commit once
    - Non-owners get 404 for orders they do not own (existence not leaked)
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, func, or_, cast, String
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.domain_types import DeliveryType, OrderStatus, PAID_ORDER_STATUSES
from storefront.core.errors import (
    BusinessRuleError, InsufficientStockError, ResourceNotFoundError,
)
from storefront.core.order_transitions import build_history_entry, check_transition
from storefront.core.pricing import order_subtotal, round_money
from storefront.core.stock_rules import check_availability, effective_delivery_type
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.order import OrderCreate
from storefront.services.coupon_service import CouponService
from storefront.services.stock_service import StockService, line_name
from storefront.services.user_service import UserService

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class _Line:
    product: Product
    variant_id: UUID | None
    product_id: UUID
    name: str
    price: float
    quantity: int
    delivery_type: DeliveryType


class OrderService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockService(db)
        self.coupons = CouponService(db)
        self.users = UserService(db)

    # ─── Queries ─────────────────────────────────────────────────

    async def get(self, order_id: UUID) -> Order:
        order = await self.db.get(Order, order_id)
        if not order:
            raise ResourceNotFoundError("Order", str(order_id))
        return order

    async def get_for_user(self, order_id: UUID, user_id: UUID) -> Order:
        order = await self.get(order_id)
        if order.user_id != user_id:
            raise ResourceNotFoundError("Order", str(order_id))
        return order

    async def find_by_payment(
        self, payment_id: str, external_reference: str | None = None,
    ) -> Order | None:
        result = await self.db.execute(select(Order).where(Order.payment_id == payment_id))
        order = result.scalar_one_or_none()
        if order is None and external_reference:
            try:
                order = await self.db.get(Order, UUID(external_reference))
            except ValueError:
                logger.warning(f"Malformed external reference: {external_reference}")
        return order

    async def list_for_user(
        self, user_id: UUID, page: int, limit: int,
    ) -> tuple[list[Order], int]:
        total = (await self.db.execute(
            select(func.count()).select_from(Order).where(Order.user_id == user_id),
        )).scalar_one()
        result = await self.db.execute(
            select(Order).where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(limit).offset((page - 1) * limit),
        )
        return list(result.scalars().all()), total

    async def stats_for_user(self, user_id: UUID) -> dict:
        """Order count over all statuses; spend and products over paid orders only."""
        order_count = (await self.db.execute(
            select(func.count()).select_from(Order).where(Order.user_id == user_id),
        )).scalar_one()
        total_spent = (await self.db.execute(
            select(func.coalesce(func.sum(Order.total_amount), 0.0))
            .where(Order.user_id == user_id, Order.status.in_(PAID_ORDER_STATUSES)),
        )).scalar_one()
        products = (await self.db.execute(
            select(func.coalesce(func.sum(OrderItem.quantity), 0))
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.user_id == user_id, Order.status.in_(PAID_ORDER_STATUSES)),
        )).scalar_one()
        return {
            "order_count": order_count,
            "total_spent": round_money(total_spent),
            "products_acquired": int(products),
        }

    async def list_admin(
        self, page: int, limit: int,
        status: OrderStatus | None = None, search: str | None = None,
    ) -> tuple[list[tuple[Order, User]], int]:
        conditions = []
        if status is not None:
            conditions.append(Order.status == status.value)
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(or_(
                func.lower(cast(Order.id, String)).like(pattern),
                func.lower(User.username).like(pattern),
                func.lower(User.email).like(pattern),
                Order.payment_id == search.strip(),
            ))
        total = (await self.db.execute(
            select(func.count()).select_from(Order)
            .join(User, User.id == Order.user_id).where(*conditions),
        )).scalar_one()
        result = await self.db.execute(
            select(Order, User).join(User, User.id == Order.user_id).where(*conditions)
            .order_by(Order.created_at.desc())
            .limit(limit).offset((page - 1) * limit),
        )
        return [(order, user) for order, user in result.all()], total

    # ─── Checkout ────────────────────────────────────────────────

    async def create(self, user: User, body: OrderCreate) -> Order:
        lines = await self._price_lines(body)
        await self._check_stock(lines)

        subtotal = order_subtotal(lines)
        discount = 0.0
        coupon = None
        if body.coupon_code:
            coupon = await self.coupons.get_usable(body.coupon_code)
            eligible = await self.coupons.eligible_total(coupon, lines)
            discount = self.coupons.quote(coupon, subtotal, eligible).discount_amount
            await self.coupons.reserve_use(coupon)

        order = Order(
            user_id=user.id,
            status=OrderStatus.PENDING.value,
            payment_method=body.payment_method.value,
            subtotal_amount=subtotal,
            discount_amount=discount,
            total_amount=round_money(max(subtotal - discount, 0)),
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            customer_data=_customer_data(user, body.customer_data),
            status_history=[build_history_entry(
                OrderStatus.PENDING, str(user.id), description="created",
            )],
            notes=[],
            items=[
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name=line.name,
                    price=line.price,
                    quantity=line.quantity,
                    delivery_type=line.delivery_type.value,
                    position=position,
                )
                for position, line in enumerate(lines)
            ],
        )
        self.db.add(order)
        await self.db.commit()
        logger.info(
            f"Order created: total {order.total_amount:.2f}",
            extra={"order_id": order.id, "user_id": user.id},
        )
        return order

    async def _price_lines(self, body: OrderCreate) -> list[_Line]:
        lines = []
        for item in body.items:
            product = await self.stock.get_product(item.product_id)
            variant = self.stock.resolve_variant(product, item.variant_id)
            lines.append(_Line(
                product=product,
                product_id=product.id,
                variant_id=variant.id if variant else None,
                name=line_name(product, variant),
                price=variant.price if variant else product.price,
                quantity=item.quantity,
                delivery_type=effective_delivery_type(
                    product.delivery_type, variant.delivery_type if variant else None,
                ),
            ))
        return lines

    async def _check_stock(self, lines: list[_Line]) -> None:
        requested: dict[tuple, int] = defaultdict(int)
        by_key: dict[tuple, _Line] = {}
        for line in lines:
            key = (line.product_id, line.variant_id)
            requested[key] += line.quantity
            by_key[key] = line
        for key, quantity in requested.items():
            line = by_key[key]
            unused = 0
            if line.delivery_type == DeliveryType.AUTOMATIC:
                unused = await self.stock.count_unused(*key)
            check_availability(line.name, line.delivery_type, unused, quantity)

    # ─── Lifecycle ───────────────────────────────────────────────

    async def transition(
        self,
        order: Order,
        target: OrderStatus,
        changed_by: str,
        description: str | None = None,
        note: str | None = None,
    ) -> bool:
        """Validate and apply a status change (no commit). False for a no-op."""
        if not check_transition(order.status, target):
            return False
        previous = order.status
        order.status = target.value
        order.status_history = [
            *(order.status_history or []),
            build_history_entry(target, changed_by, description=description),
        ]
        if note:
            self._append_note(order, note, changed_by)
        logger.info(
            f"Order status {previous} -> {target.value}",
            extra={"order_id": order.id, "status": target.value},
        )

        if target == OrderStatus.PAID:
            await self.fulfil(order)
        elif target in (OrderStatus.CANCELLED, OrderStatus.EXPIRED) and order.coupon_id:
            await self.coupons.release_use(order.coupon_id)
        return True

    async def fulfil(self, order: Order) -> None:
        """Deliver automatic lines, grant products, move to delivered when complete."""
        if order.product_assigned:
            logger.info("Fulfilment already ran", extra={"order_id": order.id})
            return
        order.product_assigned = True
        now = datetime.now(timezone.utc)

        touched: dict[UUID, Product] = {}
        for item in order.items:
            if item.delivered or item.delivery_type != DeliveryType.AUTOMATIC.value:
                continue
            if await self._deliver_automatic(order, item, now, touched):
                continue
            self._append_note(
                order,
                f"Insufficient stock to deliver '{item.name}' automatically; "
                "manual delivery required",
                SYSTEM_ACTOR,
            )

        await self.users.grant_products(order.user_id, [i.product_id for i in order.items])
        for product in touched.values():
            await self.stock.refresh_stock_counts(product)

        if order.all_items_delivered:
            await self.transition(
                order, OrderStatus.DELIVERED, SYSTEM_ACTOR,
                description="all items delivered automatically",
            )

    async def _deliver_automatic(
        self, order: Order, item: OrderItem, now: datetime, touched: dict,
    ) -> bool:
        product = await self.db.get(Product, item.product_id)
        if product is None:
            logger.error(
                "Ordered product no longer exists",
                extra={"order_id": order.id, "product_id": item.product_id},
            )
            return False
        variant = product.find_variant(item.variant_id) if item.variant_id else None
        try:
            await self.stock.claim(product, variant, item.quantity, order.user_id, order.id)
        except InsufficientStockError as e:
            logger.warning(
                f"Fulfilment short on stock: {e.message}",
                extra={"order_id": order.id, "product_id": product.id},
            )
            return False
        item.delivered = True
        item.delivered_at = now
        touched[product.id] = product
        return True

    # ─── Admin operations ────────────────────────────────────────

    async def update_status(
        self, order_id: UUID, target: OrderStatus, actor: User, note: str | None = None,
    ) -> Order:
        order = await self.get(order_id)
        changed = await self.transition(
            order, target, str(actor.id), description="updated by admin", note=note,
        )
        if not changed and note:
            self._append_note(order, note, str(actor.id))
        await self.db.commit()
        return order

    async def add_note(self, order_id: UUID, text: str, actor: User) -> Order:
        order = await self.get(order_id)
        self._append_note(order, text, str(actor.id))
        await self.db.commit()
        return order

    async def deliver_item(self, order_id: UUID, item_id: UUID, actor: User) -> Order:
        """Mark one line delivered by hand (paid orders only)."""
        order = await self.get(order_id)
        if order.status != OrderStatus.PAID.value:
            raise BusinessRuleError(
                "Only paid orders can have items delivered", "ORDER_NOT_PAID",
                details={"status": order.status},
            )
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise ResourceNotFoundError("OrderItem", str(item_id))
        if item.delivered:
            raise BusinessRuleError("Item already delivered", "ITEM_ALREADY_DELIVERED")

        now = datetime.now(timezone.utc)
        if item.delivery_type == DeliveryType.AUTOMATIC.value:
            product = await self.stock.get_product(item.product_id)
            variant = product.find_variant(item.variant_id) if item.variant_id else None
            await self.stock.claim(product, variant, item.quantity, order.user_id, order.id)
            await self.stock.refresh_stock_counts(product)
        item.delivered = True
        item.delivered_at = now
        await self.users.grant_products(order.user_id, [item.product_id])
        self._append_note(order, f"Item '{item.name}' delivered", str(actor.id))

        if order.all_items_delivered:
            await self.transition(
                order, OrderStatus.DELIVERED, str(actor.id),
                description="all items delivered",
            )
        await self.db.commit()
        logger.info(
            "Order item delivered",
            extra={"order_id": order.id, "user_id": actor.id},
        )
        return order

    @staticmethod
    def _append_note(order: Order, text: str, author: str) -> None:
        order.notes = [
            *(order.notes or []),
            {
                "text": text,
                "added_by": author,
                "added_at": datetime.now(timezone.utc).isoformat(),
            },
        ]


_ACCOUNT_FIELDS = ("name", "email", "username")


def _customer_data(user: User, extra: dict) -> dict:
    """Checkout snapshot; client extras never replace the account identity."""
    data = {"cpf": user.cpf, "phone": user.phone}
    for key, value in (extra or {}).items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            data[str(key)] = value
    data.update({field: getattr(user, field) for field in _ACCOUNT_FIELDS})
    return data
