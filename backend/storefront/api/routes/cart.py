"""Cart Routes - the authenticated user's cart.

Invariants:
    - Every response is the full cart view (items, total, item_count)
    - Catalog data (name, image, price) is copied from the product, never from the client
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import get_current_user
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.cart import (
    CartLineInput, CartQuantityUpdate, CartReplace, CartResponse,
)
from storefront.services.cart_service import CartService, to_response

router = APIRouter(prefix="/api/v1/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
async def get_cart(
    user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db),
):
    return to_response(await CartService(db).get(user.id))


@router.put("", response_model=CartResponse)
async def replace_cart(
    body: CartReplace,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return to_response(await CartService(db).replace(user.id, body.items))


@router.delete("", response_model=CartResponse)
async def clear_cart(
    user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db),
):
    return to_response(await CartService(db).clear(user.id))


@router.post("/items", response_model=CartResponse)
async def add_cart_item(
    body: CartLineInput,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return to_response(await CartService(db).add_item(user.id, body))


@router.patch("/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: UUID,
    body: CartQuantityUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return to_response(
        await CartService(db).update_quantity(user.id, item_id, body.quantity),
    )


@router.delete("/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return to_response(await CartService(db).remove_item(user.id, item_id))
