"""Auth Routes - registration, login/logout and the current-user view.

Invariants:
    - Sessions are signed JWT cookies (httpOnly, SameSite=Lax)
    - Failed logins are throttled per client IP and per email; success clears both
    - The client IP is the socket peer; X-Forwarded-For counts only with
      trust_proxy_headers
    - Bad email and bad password give the same 401 (no account enumeration)

Design Decisions:
    - login_throttle is module-level process state, like category_cache
      (single-process deployment; counters reset on restart)
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.dependencies import (
    clear_auth_cookie, client_ip, get_current_user, set_auth_cookie,
)
from storefront.config import Settings, get_settings
from storefront.core.errors import InvalidCredentialsError
from storefront.core.login_throttle import LoginThrottle
from storefront.infrastructure.database import get_db
from storefront.models.user import User
from storefront.schemas.auth import (
    LoginRequest, RegisterRequest, UserResponse, UsernameAvailability,
)
from storefront.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

_settings = get_settings()
login_throttle = LoginThrottle(
    max_attempts=_settings.login_max_attempts,
    lockout_seconds=_settings.login_lockout_seconds,
)


@router.post(
    "/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = await UserService(db).register(body)
    set_auth_cookie(response, user, settings)
    return user


@router.post("/login", response_model=UserResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    ip = client_ip(request, settings)
    keys = (f"ip:{ip}", f"email:{body.email}")
    for key in keys:
        login_throttle.check(key)
    try:
        user = await UserService(db).authenticate(body.email, body.password)
    except InvalidCredentialsError:
        failures = max(login_throttle.record_failure(key) for key in keys)
        logger.warning(f"Failed login for {body.email} from {ip} ({failures} in window)")
        raise
    for key in keys:
        login_throttle.reset(key)
    set_auth_cookie(response, user, settings)
    logger.info("User logged in", extra={"user_id": user.id})
    return user


@router.post("/logout")
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    clear_auth_cookie(response, settings)
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user


@router.get("/check-username", response_model=UsernameAvailability)
async def check_username(
    username: str = Query(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_.-]+$"),
    db: AsyncSession = Depends(get_db),
):
    taken = await UserService(db).username_taken(username)
    return UsernameAvailability(username=username, available=not taken)
