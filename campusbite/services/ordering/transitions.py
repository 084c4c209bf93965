"""Order status transitions for vendors and customers."""
import logging
from datetime import datetime
from typing import Optional

from campusbite.core.errors import (
    AuthorizationError,
    ConcurrentUpdateError,
    OrderNotFoundError,
    StoreTimeoutError,
)
from campusbite.services.ordering.models import OrderView, StatusChange
from campusbite.services.ordering.queries import to_order_view
from campusbite.services.ordering.status import OrderStatus, ensure_cancellable, next_status
from campusbite.services.persistence.orders import OrderPersistenceService

logger = logging.getLogger(__name__)


class OrderStatusService:
    """Applies status transitions.

    Ownership is checked before the state machine, so a caller who does not
    own the order always gets an ``AuthorizationError`` rather than a
    transition error. Writes are compare-and-swap on status and version.
    """

    def __init__(self, orders: OrderPersistenceService):
        self.orders = orders

    async def advance(
        self,
        order_id: str,
        vendor_id: str,
        expected_version: Optional[int] = None,
    ) -> OrderView:
        """Move an order one step along the vendor workflow."""
        order = await self._load(order_id)
        if order.vendor_id != vendor_id:
            logger.warning(
                f"[ORDER STATUS] Vendor {vendor_id} tried to advance order {order_id} "
                f"owned by {order.vendor_id}"
            )
            raise AuthorizationError("This order does not belong to your store.")

        target = next_status(order.status)
        return await self._apply(order, target, vendor_id, expected_version)

    async def cancel(
        self,
        order_id: str,
        customer_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> OrderView:
        """Cancel an order on behalf of its customer."""
        order = await self._load(order_id)
        if order.customer_id != customer_id:
            logger.warning(
                f"[ORDER STATUS] Customer {customer_id} tried to cancel order {order_id}"
            )
            raise AuthorizationError("You can only cancel your own orders.")

        ensure_cancellable(order.status)
        return await self._apply(order, OrderStatus.CANCELLED, customer_id, expected_version, reason)

    async def _load(self, order_id: str) -> OrderView:
        row = await self.orders.get_order_row(order_id)
        if row is None:
            raise OrderNotFoundError(order_id)
        return to_order_view(row)

    async def _apply(
        self,
        order: OrderView,
        target: OrderStatus,
        actor_id: str,
        expected_version: Optional[int],
        reason: Optional[str] = None,
    ) -> OrderView:
        if expected_version is not None and expected_version != order.version:
            raise ConcurrentUpdateError(order.id)

        change = StatusChange(
            order_id=order.id,
            from_status=order.status,
            to_status=target,
            changed_by=actor_id,
            reason=reason,
            changed_at=datetime.utcnow(),
        )
        try:
            updated = await self.orders.transition_status(
                order.id, order.status, order.version, change
            )
        except StoreTimeoutError:
            updated = await self._landed_despite_timeout(order, target)
            if updated is None:
                raise
        if updated is None:
            logger.warning(
                f"[ORDER STATUS] Lost update on order {order.id}: "
                f"{order.status.value} -> {target.value} (version {order.version})"
            )
            raise ConcurrentUpdateError(order.id)

        logger.info(
            f"[ORDER STATUS] Order {order.id}: {order.status.value} -> {target.value} "
            f"by {actor_id}"
        )
        view = to_order_view(updated)
        return view.model_copy(update={"status_history": [change]})

    async def _landed_despite_timeout(self, order: OrderView, target: OrderStatus):
        """Re-read after a timed-out write; the commit may have gone through.

        The compare-and-swap moves ``order.version`` to exactly one successor,
        so a row at the next version with the target status is this write.
        """
        row = await self.orders.get_order_row(order.id)
        if (
            row is not None
            and row.version == order.version + 1
            and OrderStatus.from_db(row.status) == target
        ):
            logger.warning(
                f"[ORDER STATUS] Update of order {order.id} to {target.value} timed out "
                f"after committing; treating it as applied"
            )
            return row
        return None
