"""Main FastAPI application."""
from contextlib import asynccontextmanager
from datetime import timedelta
from fastapi import FastAPI

from campusbite.api import auth, cart, health, orders
from campusbite.core.config import settings
from campusbite.core.logging import setup_logging
from campusbite.db.database import AsyncSessionLocal, init_db
from campusbite.services.cart.storage import CartStorage, InMemoryCartStorage, SqlCartStorage
from campusbite.services.catalog.loader import CatalogLoader
from campusbite.services.persistence.catalog import CatalogPersistenceService
from campusbite.services.session.registry import SessionRegistry


def build_cart_storage() -> CartStorage:
    """Pick the cart backend from settings."""
    if settings.cart_storage == "memory":
        return InMemoryCartStorage()
    return SqlCartStorage(AsyncSessionLocal)


async def load_catalog() -> None:
    """Seed vendors and menus from the configured YAML file."""
    async with AsyncSessionLocal() as db:
        await CatalogLoader(settings.catalog_file).load_into(CatalogPersistenceService(db))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    if settings.catalog_file:
        await load_catalog()
    app.state.sessions = SessionRegistry(
        build_cart_storage(), ttl=timedelta(hours=settings.session_ttl_hours)
    )
    yield
    # Shutdown
    await app.state.sessions.close_all()


app = FastAPI(
    title=settings.app_name,
    description="Campus food ordering: carts, orders and order status",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(auth.router, tags=["auth"])
app.include_router(cart.router, tags=["cart"])
app.include_router(orders.router, tags=["orders"])
