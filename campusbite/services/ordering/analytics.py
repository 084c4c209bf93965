"""Vendor sales analytics."""
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel

from campusbite.services.money import ZERO, to_money
from campusbite.services.ordering.models import OrderView
from campusbite.services.ordering.queries import to_order_view
from campusbite.services.ordering.status import OrderStatus
from campusbite.services.persistence.orders import OrderPersistenceService


class AnalyticsPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


class VendorAnalytics(BaseModel):
    """Order figures for one vendor over a period."""

    period: AnalyticsPeriod
    since: datetime
    total_orders: int
    total_revenue: Decimal
    avg_order_value: Decimal
    unique_customers: int
    status_breakdown: Dict[str, int]
    recent_orders: List[OrderView]


def period_start(period: AnalyticsPeriod, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    if period == AnalyticsPeriod.TODAY:
        return datetime(now.year, now.month, now.day)
    if period == AnalyticsPeriod.WEEK:
        return now - timedelta(days=7)
    return now - timedelta(days=30)


class VendorAnalyticsService:
    """Summarizes a vendor's orders. Cancelled orders count toward the status
    breakdown but not toward revenue."""

    def __init__(self, orders: OrderPersistenceService):
        self.orders = orders

    async def summarize(
        self,
        vendor_id: str,
        period: AnalyticsPeriod = AnalyticsPeriod.TODAY,
        now: Optional[datetime] = None,
    ) -> VendorAnalytics:
        since = period_start(period, now)
        rows = await self.orders.list_orders(vendor_id=vendor_id, since=since)
        orders = [to_order_view(row) for row in rows]

        billable = [order for order in orders if order.status != OrderStatus.CANCELLED]
        revenue = to_money(sum((order.total_amount for order in billable), ZERO))
        avg = to_money(revenue / len(billable)) if billable else ZERO

        breakdown: Dict[str, int] = {}
        for order in orders:
            breakdown[order.status.value] = breakdown.get(order.status.value, 0) + 1

        return VendorAnalytics(
            period=period,
            since=since,
            total_orders=len(orders),
            total_revenue=revenue,
            avg_order_value=avg,
            unique_customers=len({order.customer_id for order in orders}),
            status_breakdown=breakdown,
            recent_orders=orders[:5],
        )
