"""Create or promote an administrator account.

Usage:
    python -m storefront.scripts.create_admin --email admin@example.com \
        --username admin --password secret123 [--name "Store Admin"]

An existing account with the email is promoted to admin (and gets the new
password when --reset-password is given); otherwise a new account is created.
"""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from storefront.config import get_settings
from storefront.core.domain_types import UserRole
from storefront.core.errors import StorefrontError
from storefront.db.session import create_session_factory
from storefront.infrastructure.observability import setup_logging
from storefront.infrastructure.security import hash_password
from storefront.schemas.auth import RegisterRequest
from storefront.services.user_service import UserService

logger = logging.getLogger("storefront.scripts.create_admin")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or promote a storefront admin.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--username", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="")
    parser.add_argument(
        "--reset-password", action="store_true",
        help="also replace the password of an existing account",
    )
    parser.add_argument("--database-url", default=None)
    return parser.parse_args(argv)


async def create_admin(args: argparse.Namespace, database_url: str) -> str:
    """Returns "created" or "promoted"."""
    body = RegisterRequest(
        username=args.username, email=args.email,
        password=args.password, name=args.name,
    )
    session_factory = create_session_factory(database_url)
    async with session_factory() as db:
        users = UserService(db)
        user = await users.find_by_email(body.email)
        if user is None:
            user = await users.register(body)
            outcome = "created"
        else:
            outcome = "promoted"
            if args.reset_password:
                user.password_hash = hash_password(body.password)
        user.role = UserRole.ADMIN.value
        await db.commit()
        logger.info(f"Admin {outcome}: {user.email}", extra={"user_id": user.id})
    return outcome


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level, "text")
    try:
        outcome = asyncio.run(create_admin(args, args.database_url or settings.database_url))
    except ValidationError as e:
        logger.error(f"Invalid admin details: {e}")
        return 2
    except StorefrontError as e:
        logger.error(f"Could not create admin: {e.message}")
        return 1
    print(f"Admin account {outcome}: {args.email}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
