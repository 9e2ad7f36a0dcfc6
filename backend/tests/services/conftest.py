"""Service test fixtures - async DB, FastAPI test client and seeded storefront data.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB sessions
    - get_payment_gateway overridden with FakeGateway (no network)
    - Process-wide state (login throttle, category cache) reset around every test

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
      (FOR UPDATE SKIP LOCKED compiles away on SQLite; atomicity is still the
      conditional UPDATE's rowcount)
    - Seed helpers go through the services: seeded rows get the same denormalized
      stock counts production rows get
    - reload() uses populate_existing: test_db's identity map is not refreshed by
      writes made in request sessions
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from storefront.api.dependencies import get_payment_gateway
from storefront.api.routes.auth import login_throttle
from storefront.config import get_settings
from storefront.core.category_cache import category_cache
from storefront.db.base import Base
from storefront.infrastructure.database import get_db, DatabaseSessionManager
from storefront.infrastructure.security import create_session_token, hash_password
import storefront.infrastructure.database as db_module
from storefront.main import app
from storefront.models.user import User
from storefront.schemas.catalog import ProductCreate
from storefront.services.catalog_service import ProductService
from storefront.services.stock_service import StockService
from tests.services.fake_gateway import FakeGateway

PASSWORD = "secret123"


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_process_state():
    login_throttle.clear()
    category_cache.invalidate()
    yield
    login_throttle.clear()
    category_cache.invalidate()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
async def client(test_engine, test_session_factory, fake_gateway):
    """FastAPI test client with DB and gateway dependencies overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway

    # Readiness check reads db_manager directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


@pytest.fixture
def reload(test_db):
    """Re-read a row from the database, bypassing test_db's identity map."""
    async def _reload(model, pk):
        return await test_db.get(model, pk, populate_existing=True)
    return _reload


# ─── Users ──────────────────────────────────────────────────────

@pytest.fixture
def make_user(test_db):
    async def _make(username: str = "buyer", role: str = "user", **fields) -> User:
        user = User(
            username=username,
            email=fields.pop("email", f"{username}@example.com"),
            password_hash=hash_password(fields.pop("password", PASSWORD)),
            name=fields.pop("name", username.title()),
            role=role,
            **fields,
        )
        test_db.add(user)
        await test_db.commit()
        return user
    return _make


def auth_headers(user: User) -> dict:
    settings = get_settings()
    token = create_session_token(
        str(user.id), user.role, settings.jwt_secret,
        settings.auth_token_ttl_seconds, settings.jwt_algorithm,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def buyer(make_user):
    return await make_user("buyer", name="Ana Souza", cpf="12345678909")


@pytest.fixture
async def admin(make_user):
    return await make_user("admin", role="admin")


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def buyer_headers(buyer):
    return auth_headers(buyer)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


# ─── Catalog ────────────────────────────────────────────────────

@pytest.fixture
def make_product(test_db):
    async def _make(
        name: str = "Game Key",
        price: float = 50.0,
        delivery_type: str = "automatic",
        variants: list[dict] | None = None,
        **fields,
    ):
        body = ProductCreate(
            name=name,
            description=fields.pop("description", f"{name} description"),
            images=fields.pop("images", ["https://img.test/key.png"]),
            price=price,
            delivery_type=delivery_type,
            variants=variants or [],
            **fields,
        )
        return await ProductService(test_db).create(body)
    return _make


@pytest.fixture
def add_stock(test_db):
    async def _add(product, codes: list[str], variant=None):
        return await StockService(test_db).add_codes(
            product.id, variant.id if variant else None, codes,
        )
    return _add
