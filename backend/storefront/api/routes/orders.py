"""Order Routes - checkout for shoppers.

Invariants:
    - Only product, variant and quantity come from the client; amounts are computed
    - The new order starts as pending; payment is a separate step (/payments/pix)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import get_current_user
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.order import OrderCreate, OrderResponse
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService(db).create(user, body)
