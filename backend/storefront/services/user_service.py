"""User Service - registration, credential checks, profile edits and admin user management.

Invariants:
    - Unknown email and wrong password produce the same InvalidCredentialsError
    - Uniqueness of username/email checked before insert (409, never a raw IntegrityError)
    - member_number: random 100000-999999, MEMBER_NUMBER_ATTEMPTS tries, else None
    - An admin can neither demote nor delete their own account

Design Decisions:
    - Service owns commits for its operations; routes stay thin
"""

import logging
import random
from uuid import UUID

from sqlalchemy import select, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.domain_types import UserRole
from storefront.core.errors import (
    BusinessRuleError, DuplicateResourceError, InvalidCredentialsError,
    PermissionDeniedError, ResourceNotFoundError,
)
from storefront.infrastructure.security import hash_password, verify_password
from storefront.models.order import Order
from storefront.models.stock_item import StockItem
from storefront.models.cart import Cart
from storefront.models.user import User
from storefront.schemas.auth import AdminUserUpdate, ProfileUpdate, RegisterRequest

logger = logging.getLogger(__name__)

MEMBER_NUMBER_MIN = 100000
MEMBER_NUMBER_MAX = 999999
MEMBER_NUMBER_ATTEMPTS = 5


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: UUID | str) -> User:
        user = await self.db.get(User, _as_uuid(user_id))
        if not user:
            raise ResourceNotFoundError("User", str(user_id))
        return user

    async def find_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower()),
        )
        return result.scalar_one_or_none()

    async def username_taken(self, username: str) -> bool:
        result = await self.db.execute(
            select(func.count()).select_from(User).where(
                func.lower(User.username) == username.strip().lower(),
            ),
        )
        return result.scalar_one() > 0

    async def register(self, body: RegisterRequest) -> User:
        if await self.username_taken(body.username):
            raise DuplicateResourceError("User", "username", body.username)
        if await self.find_by_email(body.email):
            raise DuplicateResourceError("User", "email", body.email)

        user = User(
            username=body.username,
            email=body.email,
            password_hash=hash_password(body.password),
            name=body.name.strip(),
            role=UserRole.USER.value,
            member_number=await self._allocate_member_number(),
        )
        self.db.add(user)
        await self.db.commit()
        logger.info("User registered", extra={"user_id": user.id})
        return user

    async def authenticate(self, email: str, password: str) -> User:
        user = await self.find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        return user

    async def _allocate_member_number(self) -> int | None:
        for _ in range(MEMBER_NUMBER_ATTEMPTS):
            candidate = random.randint(MEMBER_NUMBER_MIN, MEMBER_NUMBER_MAX)  # nosec B311
            result = await self.db.execute(
                select(User.id).where(User.member_number == candidate),
            )
            if result.scalar_one_or_none() is None:
                return candidate
        logger.warning("Could not allocate a free member number")
        return None

    # ─── Profile ─────────────────────────────────────────────────

    async def update_profile(self, user: User, body: ProfileUpdate) -> User:
        for field_name in ("name", "cpf", "phone", "address", "profile_image"):
            value = getattr(body, field_name)
            if value is not None:
                setattr(user, field_name, value.strip())
        if body.new_password:
            if not verify_password(body.current_password or "", user.password_hash):
                raise BusinessRuleError(
                    "Current password is incorrect", "INVALID_CURRENT_PASSWORD",
                )
            user.password_hash = hash_password(body.new_password)
        await self.db.commit()
        return user

    async def grant_products(self, user_id: UUID, product_ids: list[UUID | str]) -> None:
        """Add product ids to the user's owned list (no commit)."""
        user = await self.get(user_id)
        owned = list(user.owned_products or [])
        for pid in product_ids:
            if str(pid) not in owned:
                owned.append(str(pid))
        user.owned_products = owned

    # ─── Admin ───────────────────────────────────────────────────

    async def list_users(
        self, page: int, limit: int, search: str | None = None,
    ) -> tuple[list[User], int]:
        query = select(User)
        count_query = select(func.count()).select_from(User)
        if search:
            pattern = f"%{search.strip().lower()}%"
            condition = or_(
                func.lower(User.username).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(User.name).like(pattern),
            )
            query = query.where(condition)
            count_query = count_query.where(condition)
        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(User.created_at.desc())
            .limit(limit).offset((page - 1) * limit),
        )
        return list(result.scalars().all()), total

    async def admin_update(self, actor: User, user_id: UUID, body: AdminUserUpdate) -> User:
        user = await self.get(user_id)
        if body.role is not None and body.role.value != user.role:
            if user.id == actor.id:
                raise PermissionDeniedError("Admins cannot change their own role")
            user.role = body.role.value
        if body.name is not None:
            user.name = body.name.strip()
        if body.email is not None and body.email != user.email:
            existing = await self.find_by_email(body.email)
            if existing and existing.id != user.id:
                raise DuplicateResourceError("User", "email", body.email)
            user.email = body.email
        await self.db.commit()
        logger.info("User updated by admin", extra={"user_id": user.id})
        return user

    async def admin_delete(self, actor: User, user_id: UUID) -> None:
        user = await self.get(user_id)
        if user.id == actor.id:
            raise PermissionDeniedError("Admins cannot delete their own account")
        orders = await self.db.execute(
            select(func.count()).select_from(Order).where(Order.user_id == user.id),
        )
        if orders.scalar_one() > 0:
            raise BusinessRuleError(
                "User has orders and cannot be deleted", "USER_HAS_ORDERS",
            )
        await self.db.execute(
            update(StockItem).where(StockItem.assigned_to == user.id)
            .values(assigned_to=None)
            .execution_options(synchronize_session=False),
        )
        cart = await self.db.execute(select(Cart).where(Cart.user_id == user.id))
        cart_row = cart.scalar_one_or_none()
        if cart_row:
            await self.db.delete(cart_row)
        await self.db.delete(user)
        await self.db.commit()
        logger.info("User deleted by admin", extra={"user_id": user_id})


def _as_uuid(value: UUID | str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ResourceNotFoundError("User", str(value))
