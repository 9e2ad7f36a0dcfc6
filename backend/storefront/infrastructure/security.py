"""Security Primitives - bcrypt password hashing and signed session tokens (JWT HS256).

Invariants:
    - Plain passwords never stored or logged
    - Session tokens always signed and expiring; decode_session_token verifies both
    - Token carries sub (user id) and role, but role is re-read from the DB by the
      auth dependency; the claim is informational only

Design Decisions:
    - bcrypt directly over passlib: one algorithm, no scheme registry needed
    - PyJWT over hand-rolled HMAC: standard claims (exp, iat) validated by the library
"""

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from storefront.core.errors import AuthenticationRequiredError

logger = logging.getLogger(__name__)

# bcrypt only considers the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    raw = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:_BCRYPT_MAX_BYTES],
            password_hash.encode("utf-8"),
        )
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def create_session_token(
    user_id: str,
    role: str,
    secret: str,
    ttl_seconds: int,
    algorithm: str = "HS256",
    now: datetime | None = None,
) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": issued,
        "exp": issued + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_session_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    """Verify signature and expiry; raise AuthenticationRequiredError otherwise."""
    try:
        payload = jwt.decode(
            token, secret, algorithms=[algorithm], options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationRequiredError("Session expired")
    except jwt.InvalidTokenError:
        raise AuthenticationRequiredError("Invalid session token")
    return payload
