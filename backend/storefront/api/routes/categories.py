"""Category Routes - cached public listing and admin CRUD.

Invariants:
    - GET /categories is served from category_cache; every write invalidates it
    - Writes require an admin
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import require_admin
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.catalog import CategoryCreate, CategoryResponse, CategoryUpdate
from storefront.services.catalog_service import CategoryService

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


@router.get("", response_model=list[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await CategoryService(db).list_cached()


@router.get("/slug/{slug}", response_model=CategoryResponse)
async def get_category_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return await CategoryService(db).get_by_slug(slug)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: UUID, db: AsyncSession = Depends(get_db)):
    return await CategoryService(db).get(category_id)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CategoryService(db).create(body)


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: UUID,
    body: CategoryUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CategoryService(db).update(category_id, body)


@router.delete("/{category_id}")
async def delete_category(
    category_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await CategoryService(db).delete(category_id)
    return {"success": True}
