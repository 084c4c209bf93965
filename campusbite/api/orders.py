"""Customer and vendor order endpoints."""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from campusbite.api.auth import require_session, require_vendor
from campusbite.api.errors import to_http_exception
from campusbite.core.dependencies import (
    get_order_queries,
    get_order_status_service,
    get_order_submission,
    get_vendor_analytics,
)
from campusbite.core.errors import CampusBiteError
from campusbite.services.ordering.analytics import (
    AnalyticsPeriod,
    VendorAnalytics,
    VendorAnalyticsService,
)
from campusbite.services.ordering.models import OrderRequest, OrderView
from campusbite.services.ordering.queries import OrderQueryService
from campusbite.services.ordering.status import OrderStatus
from campusbite.services.ordering.submission import OrderSubmissionService
from campusbite.services.ordering.transitions import OrderStatusService
from campusbite.services.session.registry import UserSession

router = APIRouter()
logger = logging.getLogger(__name__)


class CancelRequest(BaseModel):
    """Cancel request model."""
    reason: Optional[str] = None
    expected_version: Optional[int] = None


class AdvanceRequest(BaseModel):
    """Advance request model."""
    expected_version: Optional[int] = None


@router.post("/api/orders", response_model=OrderView, status_code=201)
async def create_order(
    order_req: OrderRequest,
    session: UserSession = Depends(require_session),
    submission: OrderSubmissionService = Depends(get_order_submission),
):
    """Place an order directly (without the server-side cart)."""
    logger.info(
        f"[ORDERS] Create request - customer: {session.user_id}, "
        f"vendor: {order_req.vendor_id}, lines: {len(order_req.items)}"
    )
    try:
        return await submission.create_order(session.user_id, order_req)
    except CampusBiteError as e:
        raise to_http_exception(e)


@router.get("/api/orders", response_model=List[OrderView])
async def list_my_orders(
    status: Optional[OrderStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    session: UserSession = Depends(require_session),
    queries: OrderQueryService = Depends(get_order_queries),
):
    """Get the signed-in customer's orders."""
    try:
        orders = await queries.list_customer_orders(session.user_id, status=status, limit=limit)
    except CampusBiteError as e:
        raise to_http_exception(e)
    logger.info(f"[ORDERS] Listed {len(orders)} orders for customer {session.user_id}")
    return orders


@router.get("/api/orders/{order_id}", response_model=OrderView)
async def get_order(
    order_id: str,
    session: UserSession = Depends(require_session),
    queries: OrderQueryService = Depends(get_order_queries),
):
    """Get one order (customer or vendor of that order only)."""
    try:
        return await queries.get_order(order_id, session.user_id)
    except CampusBiteError as e:
        raise to_http_exception(e)


@router.post("/api/orders/{order_id}/cancel", response_model=OrderView)
async def cancel_order(
    order_id: str,
    cancel_req: Optional[CancelRequest] = None,
    session: UserSession = Depends(require_session),
    status_service: OrderStatusService = Depends(get_order_status_service),
):
    """Cancel an order that has not started preparing."""
    cancel_req = cancel_req or CancelRequest()
    logger.info(f"[ORDERS] Cancel request - order: {order_id}, customer: {session.user_id}")
    try:
        return await status_service.cancel(
            order_id,
            session.user_id,
            reason=cancel_req.reason,
            expected_version=cancel_req.expected_version,
        )
    except CampusBiteError as e:
        raise to_http_exception(e)


@router.get("/api/vendor/orders", response_model=List[OrderView])
async def list_vendor_orders(
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: UserSession = Depends(require_vendor),
    queries: OrderQueryService = Depends(get_order_queries),
):
    """Get a page of the signed-in vendor's orders."""
    try:
        return await queries.list_vendor_orders(
            session.user_id, status=status, page=page, limit=limit
        )
    except CampusBiteError as e:
        raise to_http_exception(e)


@router.post("/api/vendor/orders/{order_id}/advance", response_model=OrderView)
async def advance_order(
    order_id: str,
    advance_req: Optional[AdvanceRequest] = None,
    session: UserSession = Depends(require_vendor),
    status_service: OrderStatusService = Depends(get_order_status_service),
):
    """Move an order to its next status."""
    advance_req = advance_req or AdvanceRequest()
    logger.info(f"[VENDOR ORDERS] Advance request - order: {order_id}, vendor: {session.user_id}")
    try:
        return await status_service.advance(
            order_id, session.user_id, expected_version=advance_req.expected_version
        )
    except CampusBiteError as e:
        raise to_http_exception(e)


@router.get("/api/vendor/analytics", response_model=VendorAnalytics)
async def vendor_analytics(
    period: AnalyticsPeriod = AnalyticsPeriod.TODAY,
    session: UserSession = Depends(require_vendor),
    analytics: VendorAnalyticsService = Depends(get_vendor_analytics),
):
    """Order figures for the signed-in vendor."""
    try:
        return await analytics.summarize(session.user_id, period)
    except CampusBiteError as e:
        raise to_http_exception(e)
