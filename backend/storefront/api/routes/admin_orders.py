"""Admin Order Routes - listing, status changes, notes and manual delivery.

Invariants:
    - All routes require an admin
    - Status changes go through the transition table (409 on forbidden moves)
    - Items can be delivered by hand only on paid orders
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import require_admin
from storefront.core.domain_types import OrderStatus
from storefront.infrastructure.database import get_db
from storefront.models.order import Order
from storefront.models.user import User
from storefront.schemas.common import Pagination
from storefront.schemas.order import AdminOrderResponse, NoteCreate, StatusUpdate
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/api/v1/admin/orders", tags=["admin"])


def _admin_view(order: Order, buyer: User | None) -> AdminOrderResponse:
    view = AdminOrderResponse.model_validate(order)
    if buyer is not None:
        view.username = buyer.username
        view.email = buyer.email
    return view


async def _with_buyer(db: AsyncSession, order: Order) -> AdminOrderResponse:
    return _admin_view(order, await db.get(User, order.user_id))


@router.get("")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: OrderStatus | None = None,
    search: str | None = Query(None, max_length=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await OrderService(db).list_admin(page, limit, status=status, search=search)
    return {
        "orders": [_admin_view(order, buyer) for order, buyer in rows],
        "pagination": Pagination.build(page, limit, total),
    }


@router.get("/{order_id}", response_model=AdminOrderResponse)
async def get_order(
    order_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _with_buyer(db, await OrderService(db).get(order_id))


@router.patch("/{order_id}/status", response_model=AdminOrderResponse)
async def update_order_status(
    order_id: UUID,
    body: StatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService(db).update_status(order_id, body.status, admin, body.note)
    return await _with_buyer(db, order)


@router.post("/{order_id}/notes", response_model=AdminOrderResponse)
async def add_order_note(
    order_id: UUID,
    body: NoteCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService(db).add_note(order_id, body.text, admin)
    return await _with_buyer(db, order)


@router.post("/{order_id}/items/{item_id}/deliver", response_model=AdminOrderResponse)
async def deliver_order_item(
    order_id: UUID,
    item_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService(db).deliver_item(order_id, item_id, admin)
    return await _with_buyer(db, order)
