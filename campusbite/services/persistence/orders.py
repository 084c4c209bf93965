"""Order persistence service."""
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from sqlalchemy import delete, desc, select, update

from campusbite.db.models import MenuItem, Order, OrderItem, OrderStatusHistory, generate_id
from campusbite.services.money import line_total
from campusbite.services.ordering.models import OrderLineInput, StatusChange
from campusbite.services.ordering.status import OrderStatus, STATUS_TIMESTAMP_FIELDS
from campusbite.services.persistence.base import StoreService


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Human-readable order number, e.g. ``CB-250314-9F2A1C``."""
    now = now or datetime.utcnow()
    return f"CB-{now:%y%m%d}-{secrets.token_hex(3).upper()}"


class OrderPersistenceService(StoreService):
    """Service for persisting order data.

    Each write commits on its own: the order row and its lines are separate
    round trips, so callers are responsible for compensating when the second
    one fails.
    """

    async def create_order(
        self,
        customer_id: str,
        vendor_id: str,
        subtotal: Decimal,
        delivery_fee: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        payment_method: Optional[str] = None,
        special_instructions: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> Order:
        """Insert a new pending order.

        Pass ``order_id`` to fix the key up front, so a caller whose insert
        call failed can still find out whether the row landed.
        """

        async def work() -> Order:
            now = datetime.utcnow()
            order = Order(
                id=order_id or generate_id(),
                order_number=generate_order_number(now),
                customer_id=customer_id,
                vendor_id=vendor_id,
                status=OrderStatus.PENDING.value,
                subtotal=subtotal,
                delivery_fee=delivery_fee,
                tax_amount=tax_amount,
                total_amount=total_amount,
                payment_method=payment_method,
                payment_status="pending",
                special_instructions=special_instructions,
                created_at=now,
                updated_at=now,
                version=1,
            )
            self.db.add(order)
            await self.db.commit()
            await self.db.refresh(order)
            return order

        return await self._run("insert order", work)

    async def add_order_items(
        self, order_id: str, items: Sequence[OrderLineInput]
    ) -> List[OrderItem]:
        """Insert all lines of an order in one commit."""

        async def work() -> List[OrderItem]:
            order_items = []
            for item in items:
                order_item = OrderItem(
                    order_id=order_id,
                    menu_item_id=item.menu_item_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=line_total(item.unit_price, item.quantity),
                    special_instructions=item.special_instructions,
                )
                order_items.append(order_item)
                self.db.add(order_item)

            await self.db.commit()
            for order_item in order_items:
                await self.db.refresh(order_item)
            return order_items

        return await self._run("insert order lines", work)

    async def delete_order(self, order_id: str) -> bool:
        """Remove an order together with its lines and history.

        Returns whether an order row was actually deleted.
        """

        async def work() -> bool:
            await self.db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
            await self.db.execute(
                delete(OrderStatusHistory).where(OrderStatusHistory.order_id == order_id)
            )
            result = await self.db.execute(delete(Order).where(Order.id == order_id))
            await self.db.commit()
            return result.rowcount > 0

        return await self._run("delete order", work)

    async def get_order_row(self, order_id: str) -> Optional[Order]:
        """Get the flat order row, bypassing any cached copy."""

        async def work() -> Optional[Order]:
            result = await self.db.execute(
                select(Order)
                .where(Order.id == order_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

        return await self._run("select order", work)

    async def list_orders(
        self,
        customer_id: Optional[str] = None,
        vendor_id: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Order]:
        """Flat order rows, newest first."""

        async def work() -> List[Order]:
            query = select(Order).execution_options(populate_existing=True)
            if customer_id is not None:
                query = query.where(Order.customer_id == customer_id)
            if vendor_id is not None:
                query = query.where(Order.vendor_id == vendor_id)
            if status is not None:
                query = query.where(Order.status == status)
            if since is not None:
                query = query.where(Order.created_at >= since)
            query = query.order_by(desc(Order.created_at)).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            result = await self.db.execute(query)
            return list(result.scalars().all())

        return await self._run("select orders", work)

    async def get_order_lines(
        self, order_ids: Sequence[str]
    ) -> List[Tuple[OrderItem, Optional[str], Optional[str]]]:
        """Lines for many orders at once, with menu item name and image."""
        if not order_ids:
            return []

        async def work():
            result = await self.db.execute(
                select(OrderItem, MenuItem.name, MenuItem.image_url)
                .outerjoin(MenuItem, MenuItem.id == OrderItem.menu_item_id)
                .where(OrderItem.order_id.in_(list(order_ids)))
                .order_by(OrderItem.created_at)
            )
            return [(row[0], row[1], row[2]) for row in result.all()]

        return await self._run("select order lines", work)

    async def get_status_history(self, order_ids: Sequence[str]) -> List[OrderStatusHistory]:
        if not order_ids:
            return []

        async def work() -> List[OrderStatusHistory]:
            result = await self.db.execute(
                select(OrderStatusHistory)
                .where(OrderStatusHistory.order_id.in_(list(order_ids)))
                .order_by(OrderStatusHistory.id)
            )
            return list(result.scalars().all())

        return await self._run("select order status history", work)

    async def record_status_change(self, change: StatusChange) -> None:
        """Append one entry to the status history."""

        async def work() -> None:
            self.db.add(self._history_row(change))
            await self.db.commit()

        await self._run("insert status history", work)

    async def transition_status(
        self,
        order_id: str,
        from_status: OrderStatus,
        expected_version: int,
        change: StatusChange,
    ) -> Optional[Order]:
        """Compare-and-swap the order status.

        The update only applies if the row still has ``from_status`` and
        ``expected_version``. Returns the updated order, or ``None`` when
        another writer got there first. The history entry is written in the
        same commit.
        """

        async def work() -> Optional[Order]:
            values: Dict[str, Any] = {
                "status": change.to_status.value,
                "version": Order.version + 1,
                "updated_at": change.changed_at,
            }
            timestamp_field = STATUS_TIMESTAMP_FIELDS.get(change.to_status)
            if timestamp_field:
                values[timestamp_field] = change.changed_at
            if change.to_status == OrderStatus.CANCELLED and change.reason:
                values["cancellation_reason"] = change.reason

            result = await self.db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status == from_status.value,
                    Order.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.db.rollback()
                return None

            self.db.add(self._history_row(change))
            await self.db.commit()

            refreshed = await self.db.execute(
                select(Order)
                .where(Order.id == order_id)
                .execution_options(populate_existing=True)
            )
            return refreshed.scalar_one()

        return await self._run("update order status", work)

    @staticmethod
    def _history_row(change: StatusChange) -> OrderStatusHistory:
        return OrderStatusHistory(
            order_id=change.order_id,
            from_status=change.from_status.value if change.from_status else None,
            to_status=change.to_status.value,
            changed_by=change.changed_by,
            reason=change.reason,
            created_at=change.changed_at,
        )
