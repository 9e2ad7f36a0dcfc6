"""Cron Routes - scheduled maintenance triggered over HTTP.

Invariants:
    - When cron_api_key is configured, the key must be given as
      Authorization: Bearer <key> or ?key=<key>; otherwise 401
"""

import hmac

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import Settings, get_settings
from storefront.core.errors import AuthenticationRequiredError
from storefront.infrastructure.database import get_db
from storefront.services.maintenance_service import expire_pending_orders

router = APIRouter(prefix="/api/v1/cron", tags=["cron"])


def _check_cron_key(request: Request, key: str | None, settings: Settings) -> None:
    expected = settings.cron_api_key
    if not expected:
        return
    header = request.headers.get("authorization", "")
    given = header[7:].strip() if header.lower().startswith("bearer ") else key
    if not given or not hmac.compare_digest(given, expected):
        raise AuthenticationRequiredError("Invalid cron key")


@router.get("/expire-orders")
async def expire_orders(
    request: Request,
    key: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    _check_cron_key(request, key, settings)
    expired = await expire_pending_orders(db, settings.order_expiration_minutes)
    return {"expired": len(expired), "order_ids": expired}
