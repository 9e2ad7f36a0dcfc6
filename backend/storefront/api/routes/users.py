"""User Routes - profile, own orders and purchase stats, owned products and delivered codes.

Invariants:
    - Every route acts on the authenticated user only
    - Orders of other users answer 404, never 403
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import get_current_user
from storefront.infrastructure.database import get_db
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.auth import ProfileUpdate, UserResponse
from storefront.schemas.catalog import ProductResponse
from storefront.schemas.common import Pagination
from storefront.schemas.order import OrderResponse, UserStatsResponse
from storefront.services.order_service import OrderService
from storefront.services.stock_service import StockService
from storefront.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.patch("/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).update_profile(user, body)


@router.get("/me/orders")
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await OrderService(db).list_for_user(user.id, page, limit)
    return {
        "orders": [OrderResponse.model_validate(o) for o in orders],
        "pagination": Pagination.build(page, limit, total),
    }


@router.get("/me/stats", response_model=UserStatsResponse)
async def my_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService(db).stats_for_user(user.id)


@router.get("/me/orders/{order_id}", response_model=OrderResponse)
async def my_order(
    order_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService(db).get_for_user(order_id, user.id)


@router.get("/me/products", response_model=list[ProductResponse])
async def my_products(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ids = []
    for raw in user.owned_products or []:
        try:
            ids.append(UUID(str(raw)))
        except ValueError:
            logger.warning(f"Skipping malformed owned product id {raw!r}")
    if not ids:
        return []
    result = await db.execute(select(Product).where(Product.id.in_(ids)))
    return list(result.scalars().all())


@router.get("/me/stock-items")
async def my_stock_items(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    groups, total = await StockService(db).assigned_to_user(user.id, page, limit)
    return {"groups": groups, "pagination": Pagination.build(page, limit, total)}
