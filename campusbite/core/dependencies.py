"""FastAPI dependencies."""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campusbite.db.database import get_db
from campusbite.services.ordering.analytics import VendorAnalyticsService
from campusbite.services.ordering.queries import OrderQueryService
from campusbite.services.ordering.submission import OrderSubmissionService
from campusbite.services.ordering.transitions import OrderStatusService
from campusbite.services.persistence.catalog import CatalogPersistenceService
from campusbite.services.persistence.orders import OrderPersistenceService
from campusbite.services.session.registry import SessionRegistry


def get_session_registry(request: Request) -> SessionRegistry:
    """Get the session registry created at startup."""
    return request.app.state.sessions


def get_order_persistence(db: AsyncSession = Depends(get_db)) -> OrderPersistenceService:
    return OrderPersistenceService(db)


def get_catalog_persistence(db: AsyncSession = Depends(get_db)) -> CatalogPersistenceService:
    return CatalogPersistenceService(db)


def get_order_queries(
    orders: OrderPersistenceService = Depends(get_order_persistence),
    catalog: CatalogPersistenceService = Depends(get_catalog_persistence),
) -> OrderQueryService:
    return OrderQueryService(orders, catalog)


def get_order_submission(
    orders: OrderPersistenceService = Depends(get_order_persistence),
    catalog: CatalogPersistenceService = Depends(get_catalog_persistence),
    queries: OrderQueryService = Depends(get_order_queries),
) -> OrderSubmissionService:
    return OrderSubmissionService(orders, catalog, queries)


def get_order_status_service(
    orders: OrderPersistenceService = Depends(get_order_persistence),
) -> OrderStatusService:
    return OrderStatusService(orders)


def get_vendor_analytics(
    orders: OrderPersistenceService = Depends(get_order_persistence),
) -> VendorAnalyticsService:
    return VendorAnalyticsService(orders)
