"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) - single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://storefront:storefront@db:5432/storefront"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Auth
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    auth_cookie_name: str = "auth_token"
    auth_token_ttl_seconds: int = 7 * 24 * 3600
    cookie_secure: bool = False
    login_max_attempts: int = 5
    login_lockout_seconds: int = 900
    # Honour X-Forwarded-For only when a trusted reverse proxy sets it
    trust_proxy_headers: bool = False

    # Payments (Mercado Pago)
    payment_access_token: str = ""
    payment_api_base_url: str = "https://api.mercadopago.com"
    payment_timeout_seconds: int = 30
    payment_max_retries: int = 3
    payment_base_delay_ms: int = 500
    payment_max_delay_ms: int = 8_000
    payment_notification_url: str = ""
    # Storefront base URL the hosted card checkout returns the buyer to
    payment_return_url: str = ""
    payment_check_interval_seconds: int = 10

    # Orders
    order_expiration_minutes: int = 30
    cron_api_key: str | None = None

    # Catalog
    category_cache_ttl_seconds: int = 300

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
