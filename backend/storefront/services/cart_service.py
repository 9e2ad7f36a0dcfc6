"""Cart Service - the signed-in user's cart, priced from the catalog on every write.

Invariants:
    - GET never creates rows: a user without a cart sees an empty one
    - Adding an existing (product, variant) merges quantities
    - Name, image, variant name and price always copied from the stored product
    - PUT replaces the whole cart; lines that fail validation are dropped, not fatal
    - Unknown product on add -> 404
"""

import logging
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.cart_rules import cart_total, find_line, merge_quantity
from storefront.core.errors import ResourceNotFoundError, StorefrontError
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product, ProductVariant
from storefront.schemas.cart import CartLineInput, CartResponse, CartItemResponse
from storefront.services.stock_service import StockService

logger = logging.getLogger(__name__)


def to_response(cart: Cart | None) -> CartResponse:
    items = list(cart.items) if cart else []
    return CartResponse(
        items=[CartItemResponse.model_validate(i) for i in items],
        total=cart_total(items),
        item_count=sum(i.quantity for i in items),
    )


class CartService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockService(db)

    async def get(self, user_id: UUID) -> Cart | None:
        result = await self.db.execute(select(Cart).where(Cart.user_id == user_id))
        return result.scalar_one_or_none()

    async def _get_or_create(self, user_id: UUID) -> Cart:
        cart = await self.get(user_id)
        if cart is None:
            cart = Cart(user_id=user_id, items=[])
            self.db.add(cart)
        return cart

    async def _priced_line(self, line: CartLineInput) -> tuple[Product, ProductVariant | None]:
        product = await self.stock.get_product(line.product_id)
        variant = self.stock.resolve_variant(product, line.variant_id)
        return product, variant

    async def add_item(self, user_id: UUID, line: CartLineInput) -> Cart:
        product, variant = await self._priced_line(line)
        cart = await self._get_or_create(user_id)
        existing = find_line(cart.items, product.id, variant.id if variant else None)
        if existing:
            existing.quantity = merge_quantity(existing.quantity, line.quantity)
            _copy_catalog_data(existing, product, variant)
        else:
            cart.items.append(_new_item(product, variant, line.quantity))
        await self.db.commit()
        return cart

    async def replace(self, user_id: UUID, raw_items: list[dict]) -> Cart:
        cart = await self._get_or_create(user_id)
        fresh: list[CartItem] = []
        for raw in raw_items:
            try:
                line = CartLineInput.model_validate(raw)
                product, variant = await self._priced_line(line)
            except (ValidationError, StorefrontError) as e:
                logger.warning(f"Dropping invalid cart line: {e}")
                continue
            existing = find_line(fresh, product.id, variant.id if variant else None)
            if existing:
                existing.quantity = merge_quantity(existing.quantity, line.quantity)
            else:
                fresh.append(_new_item(product, variant, line.quantity))
        cart.items = fresh
        await self.db.commit()
        return cart

    async def update_quantity(self, user_id: UUID, item_id: UUID, quantity: int) -> Cart:
        cart = await self.get(user_id)
        item = _find_item(cart, item_id)
        item.quantity = quantity
        await self.db.commit()
        return cart

    async def remove_item(self, user_id: UUID, item_id: UUID) -> Cart:
        cart = await self.get(user_id)
        item = _find_item(cart, item_id)
        cart.items.remove(item)
        await self.db.commit()
        return cart

    async def clear(self, user_id: UUID) -> Cart | None:
        cart = await self.get(user_id)
        if cart is not None:
            cart.items = []
            await self.db.commit()
        return cart


def _find_item(cart: Cart | None, item_id: UUID) -> CartItem:
    for item in (cart.items if cart else []):
        if item.id == item_id:
            return item
    raise ResourceNotFoundError("CartItem", str(item_id))


def _new_item(product: Product, variant: ProductVariant | None, quantity: int) -> CartItem:
    item = CartItem(
        product_id=product.id,
        variant_id=variant.id if variant else None,
        quantity=quantity,
    )
    _copy_catalog_data(item, product, variant)
    return item


def _copy_catalog_data(
    item: CartItem, product: Product, variant: ProductVariant | None,
) -> None:
    item.product_name = product.name
    item.product_image = (product.images or [""])[0]
    item.variant_name = variant.name if variant else ""
    item.price = variant.price if variant else product.price
    item.has_variants = bool(product.variants)
