"""Stock Routes - admin management of deliverable codes and the public availability check.

Invariants:
    - All routes except /stock/check require an admin
    - Used items cannot be deleted
    - Every write refreshes the product/variant stock counts
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import require_admin
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.common import Pagination
from storefront.schemas.stock import (
    StockAddResult, StockAssign, StockAvailability, StockBulkCreate, StockCreate,
    StockItemResponse,
)
from storefront.services.stock_service import StockService

router = APIRouter(prefix="/api/v1/stock", tags=["stock"])


@router.get("/check", response_model=StockAvailability)
async def check_stock(
    product_id: UUID,
    variant_id: UUID | None = None,
    quantity: int = Query(1, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    available = await StockService(db).check(product_id, variant_id, quantity)
    return StockAvailability(
        product_id=product_id, variant_id=variant_id,
        available=available, requested=quantity, in_stock=True,
    )


@router.get("")
async def list_stock(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    product_id: UUID | None = None,
    variant_id: UUID | None = None,
    is_used: bool | None = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items, total = await StockService(db).list_items(
        page, limit, product_id=product_id, variant_id=variant_id, is_used=is_used,
    )
    return {
        "items": [StockItemResponse.model_validate(i) for i in items],
        "pagination": Pagination.build(page, limit, total),
    }


@router.post("", response_model=StockAddResult, status_code=status.HTTP_201_CREATED)
async def add_stock(
    body: StockCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    added, duplicates, stock = await StockService(db).add_codes(
        body.product_id, body.variant_id, body.codes, body.metadata,
    )
    return StockAddResult(added=added, duplicates=duplicates, stock=stock)


@router.post("/bulk", response_model=StockAddResult, status_code=status.HTTP_201_CREATED)
async def add_stock_bulk(
    body: StockBulkCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    added, duplicates, stock = await StockService(db).add_codes(
        body.product_id, body.variant_id, body.codes(),
    )
    return StockAddResult(added=added, duplicates=duplicates, stock=stock)


@router.post("/assign", response_model=list[StockItemResponse])
async def assign_stock(
    body: StockAssign,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await StockService(db).assign_to_user(
        body.user_id, body.product_id, body.variant_id, body.quantity,
    )


@router.delete("/{item_id}")
async def delete_stock_item(
    item_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await StockService(db).delete_item(item_id)
    return {"success": True}
