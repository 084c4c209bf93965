"""Order query and enrichment service.

Orders are read in stages and stitched together here instead of with one
joined query: flat order rows first, then one batched query for the
counter-parties and one for the lines. A failure in either batched query
degrades the affected field (``None`` counter-party, empty line list) rather
than failing the whole list.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from campusbite.core.config import settings
from campusbite.core.errors import AuthorizationError, OrderNotFoundError, PersistenceError
from campusbite.db.models import Order
from campusbite.services.money import to_money
from campusbite.services.ordering.models import (
    CustomerSummary,
    OrderLineView,
    OrderView,
    PaymentMethod,
    StatusChange,
    VendorSummary,
)
from campusbite.services.ordering.status import OrderStatus
from campusbite.services.persistence.catalog import CatalogPersistenceService
from campusbite.services.persistence.orders import OrderPersistenceService

logger = logging.getLogger(__name__)


class OrderQueryService:
    """Fetches orders for customers and vendors."""

    def __init__(
        self,
        orders: OrderPersistenceService,
        catalog: CatalogPersistenceService,
    ):
        self.orders = orders
        self.catalog = catalog

    async def list_customer_orders(
        self,
        customer_id: str,
        status: Optional[OrderStatus] = None,
        limit: Optional[int] = None,
    ) -> List[OrderView]:
        """A customer's orders with vendor summaries and lines."""
        limit = limit or settings.default_page_size
        rows = await self.orders.list_orders(
            customer_id=customer_id,
            status=status.value if status else None,
            limit=limit,
        )
        logger.debug(f"[ORDER QUERY] customer {customer_id} - {len(rows)} orders")
        return await self.enrich(rows, with_vendor=True)

    async def list_vendor_orders(
        self,
        vendor_id: str,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> List[OrderView]:
        """A page of a vendor's orders with customer summaries and lines."""
        limit = limit or settings.default_page_size
        page = max(1, page)
        rows = await self.orders.list_orders(
            vendor_id=vendor_id,
            status=status.value if status else None,
            limit=limit,
            offset=(page - 1) * limit,
        )
        logger.debug(f"[ORDER QUERY] vendor {vendor_id} page {page} - {len(rows)} orders")
        return await self.enrich(rows, with_customer=True)

    async def get_order(self, order_id: str, principal_id: str) -> OrderView:
        """One order with everything attached, visible to its two parties only."""
        row = await self.orders.get_order_row(order_id)
        if row is None:
            raise OrderNotFoundError(order_id)
        if principal_id not in (row.customer_id, row.vendor_id):
            raise AuthorizationError("You are not allowed to view this order.")

        enriched = await self.enrich(
            [row], with_vendor=True, with_customer=True, with_history=True
        )
        return enriched[0]

    async def enrich(
        self,
        rows: Sequence[Order],
        with_vendor: bool = False,
        with_customer: bool = False,
        with_history: bool = False,
    ) -> List[OrderView]:
        """Merge counter-parties, lines and history into order views."""
        if not rows:
            return []

        # Copy the rows out first; a failed sub-query rolls back the session
        # and expires every loaded row.
        views = [to_order_view(row) for row in rows]
        order_ids = [view.id for view in views]
        vendors: Dict[str, VendorSummary] = {}
        customers: Dict[str, CustomerSummary] = {}

        if with_vendor:
            vendors = await self._vendor_summaries(_distinct(view.vendor_id for view in views))
        if with_customer:
            customers = await self._customer_summaries(
                _distinct(view.customer_id for view in views)
            )
        lines = await self._lines_by_order(order_ids)
        history = await self._history_by_order(order_ids) if with_history else {}

        return [
            view.model_copy(
                update={
                    "vendor": vendors.get(view.vendor_id),
                    "customer": customers.get(view.customer_id),
                    "items": lines.get(view.id, []),
                    "status_history": history.get(view.id, []),
                }
            )
            for view in views
        ]

    async def _vendor_summaries(self, vendor_ids: List[str]) -> Dict[str, VendorSummary]:
        try:
            vendors = await self.catalog.get_vendor_summaries(vendor_ids)
        except PersistenceError as e:
            logger.warning(f"[ORDER QUERY] Vendor lookup failed, continuing without vendors: {e}")
            return {}
        return {vendor.id: VendorSummary.model_validate(vendor) for vendor in vendors}

    async def _customer_summaries(self, customer_ids: List[str]) -> Dict[str, CustomerSummary]:
        try:
            customers = await self.catalog.get_customer_summaries(customer_ids)
        except PersistenceError as e:
            logger.warning(
                f"[ORDER QUERY] Customer lookup failed, continuing without customers: {e}"
            )
            return {}
        return {customer.id: CustomerSummary.model_validate(customer) for customer in customers}

    async def _lines_by_order(self, order_ids: List[str]) -> Dict[str, List[OrderLineView]]:
        try:
            rows = await self.orders.get_order_lines(order_ids)
        except PersistenceError as e:
            logger.warning(f"[ORDER QUERY] Order line lookup failed, continuing without lines: {e}")
            return {}

        by_order: Dict[str, List[OrderLineView]] = defaultdict(list)
        for item, item_name, image_url in rows:
            by_order[item.order_id].append(
                OrderLineView(
                    id=item.id,
                    order_id=item.order_id,
                    menu_item_id=item.menu_item_id,
                    quantity=item.quantity,
                    unit_price=to_money(item.unit_price),
                    total_price=to_money(item.total_price),
                    special_instructions=item.special_instructions,
                    item_name=item_name,
                    item_image_url=image_url,
                )
            )
        return by_order

    async def _history_by_order(self, order_ids: List[str]) -> Dict[str, List[StatusChange]]:
        try:
            rows = await self.orders.get_status_history(order_ids)
        except PersistenceError as e:
            logger.warning(f"[ORDER QUERY] Status history lookup failed: {e}")
            return {}

        by_order: Dict[str, List[StatusChange]] = defaultdict(list)
        for row in rows:
            by_order[row.order_id].append(
                StatusChange(
                    order_id=row.order_id,
                    from_status=OrderStatus.from_db(row.from_status) if row.from_status else None,
                    to_status=OrderStatus.from_db(row.to_status),
                    changed_by=row.changed_by,
                    reason=row.reason,
                    changed_at=row.created_at,
                )
            )
        return by_order


def to_order_view(
    row: Order,
    vendor: Optional[VendorSummary] = None,
    customer: Optional[CustomerSummary] = None,
    items: Optional[List[OrderLineView]] = None,
    status_history: Optional[List[StatusChange]] = None,
) -> OrderView:
    """Build the canonical order view from a stored row.

    This is the one place stored values are normalized (legacy status names,
    numeric columns to 2dp Decimals).
    """
    return OrderView(
        id=row.id,
        order_number=row.order_number,
        customer_id=row.customer_id,
        vendor_id=row.vendor_id,
        status=OrderStatus.from_db(row.status),
        subtotal=to_money(row.subtotal),
        delivery_fee=to_money(row.delivery_fee),
        tax_amount=to_money(row.tax_amount),
        total_amount=to_money(row.total_amount),
        payment_method=PaymentMethod.from_db(row.payment_method),
        payment_status=row.payment_status,
        special_instructions=row.special_instructions,
        cancellation_reason=row.cancellation_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
        vendor=vendor,
        customer=customer,
        items=items or [],
        status_history=status_history or [],
    )


def _distinct(values: Iterable[Optional[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)
