"""Coupon Routes - discount quotes for shoppers and admin CRUD.

Invariants:
    - /coupons/validate never reserves a use; reservation happens at checkout
    - For restricted coupons the eligible subtotal comes from the caller's stored cart;
      anonymous callers are quoted on the whole cart_total
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import get_optional_user, require_admin
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.coupon import (
    CouponCreate, CouponResponse, CouponUpdate, CouponValidateRequest, CouponValidation,
)
from storefront.services.cart_service import CartService
from storefront.services.coupon_service import CouponService

router = APIRouter(prefix="/api/v1/coupons", tags=["coupons"])


@router.post("/validate", response_model=CouponValidation)
async def validate_coupon(
    body: CouponValidateRequest,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    lines = []
    if user is not None:
        cart = await CartService(db).get(user.id)
        lines = list(cart.items) if cart else []
    return await CouponService(db).quote_for_cart(body.code, body.cart_total, lines)


@router.get("", response_model=list[CouponResponse])
async def list_coupons(
    admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db),
):
    return await CouponService(db).list_coupons()


@router.get("/{coupon_id}", response_model=CouponResponse)
async def get_coupon(
    coupon_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CouponService(db).get(coupon_id)


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    body: CouponCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CouponService(db).create(body, created_by=admin.id)


@router.put("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: UUID,
    body: CouponUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CouponService(db).update(coupon_id, body)


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await CouponService(db).delete(coupon_id)
    return {"success": True}
