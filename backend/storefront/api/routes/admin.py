"""Admin Routes - dashboard stats, payment settings and user management.

Invariants:
    - All routes require an admin
    - An admin cannot change their own role or delete their own account
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import require_admin
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.admin import SettingsResponse, SettingsUpdate
from storefront.schemas.auth import AdminUserDetail, AdminUserUpdate, UserResponse
from storefront.schemas.common import Pagination
from storefront.services.admin_service import AdminService
from storefront.services.user_service import UserService

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/stats")
async def stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await AdminService(db).stats()


@router.get("/settings", response_model=SettingsResponse)
async def get_admin_settings(
    admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db),
):
    return await AdminService(db).payment_settings()


@router.put("/settings", response_model=SettingsResponse)
async def update_admin_settings(
    body: SettingsUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await AdminService(db).update_payment_token(body.payment_access_token)


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None, max_length=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users, total = await UserService(db).list_users(page, limit, search)
    return {
        "users": [UserResponse.model_validate(u) for u in users],
        "pagination": Pagination.build(page, limit, total),
    }


@router.get("/users/{user_id}", response_model=AdminUserDetail)
async def get_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).get(user_id)


@router.patch("/users/{user_id}", response_model=AdminUserDetail)
async def update_user(
    user_id: UUID,
    body: AdminUserUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).admin_update(admin, user_id, body)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await UserService(db).admin_delete(admin, user_id)
    return {"success": True}
