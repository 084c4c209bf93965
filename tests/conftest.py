"""Shared test fixtures and configuration."""
import asyncio
import os
from pathlib import Path
import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CART_STORAGE", "memory")
os.environ.setdefault("STORE_TIMEOUT_SECONDS", "5")

from campusbite.api.auth import SESSION_COOKIE
from campusbite.core.dependencies import get_session_registry
from campusbite.db.database import get_db
from campusbite.db.models import Base
from campusbite.main import app
from campusbite.services.cart.models import CartLine
from campusbite.services.cart.storage import InMemoryCartStorage, SqlCartStorage
from campusbite.services.cart.store import CartStore
from campusbite.services.catalog.loader import CatalogLoader
from campusbite.services.ordering.models import OrderLineInput, OrderRequest
from campusbite.services.ordering.queries import OrderQueryService
from campusbite.services.ordering.submission import OrderSubmissionService
from campusbite.services.ordering.transitions import OrderStatusService
from campusbite.services.persistence.catalog import CatalogPersistenceService
from campusbite.services.persistence.orders import OrderPersistenceService
from campusbite.services.session.registry import SessionRegistry


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CUSTOMER_ID = "student-ama"
OTHER_CUSTOMER_ID = "student-kofi"
VENDOR_ID = "vendor-jollof"
OTHER_VENDOR_ID = "vendor-waakye"


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def stall_next_commit(test_db, monkeypatch):
    """Let the next commit land, then hang past the store timeout."""
    def _stall(delay: float = 0.5):
        real_commit = test_db.commit

        async def commit_then_hang():
            monkeypatch.setattr(test_db, "commit", real_commit)
            await real_commit()
            await asyncio.sleep(delay)

        monkeypatch.setattr(test_db, "commit", commit_then_hang)
    return _stall


@pytest.fixture
def test_catalog_path():
    """Return path to the test catalog YAML file."""
    return Path(__file__).parent / "fixtures" / "test_catalog.yaml"


@pytest.fixture
def catalog_persistence(test_db):
    return CatalogPersistenceService(test_db)


@pytest.fixture
def order_persistence(test_db):
    return OrderPersistenceService(test_db)


@pytest.fixture
async def seeded_db(test_db, catalog_persistence, test_catalog_path):
    """Test database with users, vendors and menu items loaded."""
    await CatalogLoader(test_catalog_path).load_into(catalog_persistence)
    return test_db


@pytest.fixture
def order_queries(order_persistence, catalog_persistence):
    return OrderQueryService(order_persistence, catalog_persistence)


@pytest.fixture
def order_submission(order_persistence, catalog_persistence, order_queries):
    return OrderSubmissionService(order_persistence, catalog_persistence, order_queries)


@pytest.fixture
def order_status_service(order_persistence):
    return OrderStatusService(order_persistence)


@pytest.fixture
def jollof_request():
    """Two jollof at 10.00 and one chicken at 5.00, delivery 2.00, no tax."""
    return OrderRequest(
        vendor_id=VENDOR_ID,
        items=[
            OrderLineInput(menu_item_id="item-jollof", quantity=2, unit_price="10.00"),
            OrderLineInput(menu_item_id="item-chicken", quantity=1, unit_price="5.00"),
        ],
        delivery_fee="2.00",
        tax_amount="0",
        payment_method="mobile_money",
    )


@pytest.fixture
def place_order(seeded_db, order_submission, jollof_request):
    """Place the standard jollof order for a customer."""
    async def _place_order(customer_id: str = CUSTOMER_ID):
        return await order_submission.create_order(customer_id, jollof_request)
    return _place_order


@pytest.fixture
def cart_storage():
    return InMemoryCartStorage()


@pytest.fixture
def sql_cart_storage(session_factory):
    return SqlCartStorage(session_factory)


@pytest.fixture
def cart(cart_storage):
    """Empty cart for the default customer."""
    return CartStore(owner_id=CUSTOMER_ID, storage=cart_storage)


def make_line(item_id="item-jollof", vendor_id=VENDOR_ID, price="10.00", quantity=1, name=None):
    """Build a cart line."""
    return CartLine(
        item_id=item_id,
        vendor_id=vendor_id,
        name=name or item_id,
        price=price,
        quantity=quantity,
    )


@pytest.fixture
def session_registry(cart_storage):
    return SessionRegistry(cart_storage)


@pytest.fixture
def api_app(seeded_db, session_registry):
    """FastAPI app wired to the test database and registry."""
    async def _override_get_db():
        yield seeded_db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_registry] = lambda: session_registry

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def make_client(api_app):
    """Factory for HTTP clients, optionally signed in as a user."""
    clients = []

    async def _make_client(user_id=None):
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=api_app), base_url="http://test"
        )
        clients.append(client)
        if user_id is not None:
            response = await client.post("/api/auth/login", json={"user_id": user_id})
            assert response.status_code == 200
            client.cookies.set(SESSION_COOKIE, response.cookies[SESSION_COOKIE])
        return client

    yield _make_client

    for client in clients:
        await client.aclose()
