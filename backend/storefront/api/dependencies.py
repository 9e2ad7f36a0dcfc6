"""Route Dependencies - authentication, authorization and payment gateway wiring.

Invariants:
    - The session token is read from the auth cookie, or from Authorization: Bearer
    - Every authenticated request re-loads the user: deleted users and role changes
      take effect immediately, whatever the token claims
    - require_admin raises 403 for authenticated non-admins (401 when anonymous)
"""

import logging
from uuid import UUID

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import Settings, get_settings
from storefront.core.domain_types import UserRole
from storefront.core.errors import AuthenticationRequiredError, PermissionDeniedError
from storefront.infrastructure.database import get_db
from storefront.infrastructure.payment_gateway import MercadoPagoGateway, PaymentGateway
from storefront.infrastructure.security import create_session_token, decode_session_token
from storefront.models.user import User
from storefront.services.payment_service import resolve_access_token

logger = logging.getLogger(__name__)


def _read_token(request: Request, settings: Settings) -> str | None:
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


async def _load_user(token: str, db: AsyncSession, settings: Settings) -> User:
    payload = decode_session_token(token, settings.jwt_secret, settings.jwt_algorithm)
    try:
        user_id = UUID(payload["sub"])
    except (ValueError, TypeError):
        raise AuthenticationRequiredError("Invalid session token")
    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationRequiredError("User no longer exists")
    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    token = _read_token(request, settings)
    if not token:
        raise AuthenticationRequiredError()
    return await _load_user(token, db, settings)


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User | None:
    token = _read_token(request, settings)
    if not token:
        return None
    try:
        return await _load_user(token, db, settings)
    except AuthenticationRequiredError:
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN.value:
        logger.warning("Admin route refused", extra={"user_id": user.id})
        raise PermissionDeniedError("Administrator access required")
    return user


async def get_payment_gateway(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PaymentGateway:
    token = await resolve_access_token(db, settings.payment_access_token)
    return MercadoPagoGateway(
        token,
        base_url=settings.payment_api_base_url,
        timeout_seconds=settings.payment_timeout_seconds,
        max_retries=settings.payment_max_retries,
        base_delay_ms=settings.payment_base_delay_ms,
        max_delay_ms=settings.payment_max_delay_ms,
    )


def set_auth_cookie(response: Response, user: User, settings: Settings) -> str:
    token = create_session_token(
        str(user.id), user.role, settings.jwt_secret,
        settings.auth_token_ttl_seconds, settings.jwt_algorithm,
    )
    response.set_cookie(
        settings.auth_cookie_name,
        token,
        max_age=settings.auth_token_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )
    return token


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(settings.auth_cookie_name, path="/")


def client_ip(request: Request, settings: Settings) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and settings.trust_proxy_headers:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
