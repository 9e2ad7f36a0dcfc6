"""Root conftest - shared test configuration."""

import os

# Settings are cached on first import; pin test values before any storefront import
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-0123456789abcdef0123")
os.environ.setdefault("PAYMENT_ACCESS_TOKEN", "")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
