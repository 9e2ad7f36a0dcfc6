"""Product Routes - public catalog browsing and admin product management.

Invariants:
    - limit capped at 100; sort restricted to created_at, name, price
    - Stock figures are the denormalized counts kept by StockService
"""

import logging
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import require_admin
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.catalog import (
    ProductCreate, ProductResponse, ProductSort, ProductUpdate,
)
from storefront.schemas.common import Pagination
from storefront.services.catalog_service import ProductService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/products", tags=["products"])


@router.get("")
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    sort: ProductSort = "created_at",
    direction: Literal["asc", "desc"] = Query("desc", alias="dir"),
    search: str | None = Query(None, max_length=100),
    category: str | None = None,
    featured: bool | None = None,
    db: AsyncSession = Depends(get_db),
):
    products, total = await ProductService(db).list_products(
        page, limit, sort=sort, direction=direction,
        search=search, category=category, featured=featured,
    )
    return {
        "products": [ProductResponse.model_validate(p) for p in products],
        "pagination": Pagination.build(page, limit, total),
    }


@router.get("/slug/{slug}", response_model=ProductResponse)
async def get_product_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return await ProductService(db).get_by_slug(slug)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: UUID, db: AsyncSession = Depends(get_db)):
    return await ProductService(db).get(product_id)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService(db).create(body)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: UUID,
    body: ProductUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService(db).update(product_id, body)


@router.delete("/{product_id}")
async def delete_product(
    product_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await ProductService(db).delete(product_id)
    return {"success": True}


@router.post(
    "/{product_id}/clone", response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
)
async def clone_product(
    product_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService(db).clone(product_id)
