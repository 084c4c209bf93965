"""Order submission service."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from campusbite.core.errors import PartialFailureError, PersistenceError, ValidationError
from campusbite.db.models import generate_id
from campusbite.services.cart.store import CartStore
from campusbite.services.money import ZERO, order_total, sum_lines, to_money
from campusbite.services.ordering.models import (
    OrderLineInput,
    OrderLineView,
    OrderRequest,
    OrderView,
    PaymentMethod,
    StatusChange,
)
from campusbite.services.ordering.queries import OrderQueryService, to_order_view
from campusbite.services.ordering.status import OrderStatus
from campusbite.services.persistence.catalog import CatalogPersistenceService
from campusbite.services.persistence.orders import OrderPersistenceService

logger = logging.getLogger(__name__)


class OrderSubmissionService:
    """Turns an order request (or a cart) into a stored order with lines.

    The store offers no transaction spanning the order row and its lines, so
    a failed line insert is undone by deleting the order again. If that delete
    fails too, the order is left orphaned and reported as such.
    """

    def __init__(
        self,
        orders: OrderPersistenceService,
        catalog: CatalogPersistenceService,
        queries: OrderQueryService,
    ):
        self.orders = orders
        self.catalog = catalog
        self.queries = queries

    async def create_order(self, customer_id: str, request: OrderRequest) -> OrderView:
        """
        Place an order for ``customer_id``.

        Args:
            customer_id: Authenticated customer placing the order
            request: Vendor, lines and charges

        Returns:
            The stored order, re-read with vendor and line details

        Raises:
            ValidationError: bad input, nothing was written
            PartialFailureError: the order row was written but the order was not
                placed (its lines failed, or the insert call itself failed late)
            PersistenceError: the store rejected or failed a call
        """
        self.validate(customer_id, request)

        vendor = await self.catalog.get_vendor(request.vendor_id)
        if vendor is None or not vendor.is_active:
            raise ValidationError("This vendor is not available.")
        if not vendor.is_accepting_orders:
            raise ValidationError(f"{vendor.business_name} is not accepting orders right now.")

        subtotal = sum_lines((item.unit_price, item.quantity) for item in request.items)
        minimum = to_money(vendor.minimum_order_amount)
        if subtotal < minimum:
            raise ValidationError(
                f"The minimum order for {vendor.business_name} is {minimum:.2f}."
            )

        delivery_fee = (
            request.delivery_fee if request.delivery_fee is not None
            else to_money(vendor.delivery_fee)
        )
        tax_amount = to_money(request.tax_amount)
        total_amount = order_total(subtotal, delivery_fee, tax_amount)

        logger.info(
            f"[ORDER SUBMISSION] Placing order - customer: {customer_id}, "
            f"vendor: {request.vendor_id}, lines: {len(request.items)}, "
            f"subtotal: {subtotal}, total: {total_amount}"
        )

        # Fixed up front so a failed insert call can be checked against the store
        order_id = generate_id()
        try:
            order = await self.orders.create_order(
                customer_id=customer_id,
                vendor_id=request.vendor_id,
                subtotal=subtotal,
                delivery_fee=delivery_fee,
                tax_amount=tax_amount,
                total_amount=total_amount,
                payment_method=request.payment_method.value,
                special_instructions=request.special_instructions,
                order_id=order_id,
            )
        except PersistenceError as e:
            await self._settle_failed_insert(order_id, e)
        # Plain copy: a failed call below rolls back and expires the row
        placed = to_order_view(order)

        try:
            order_items = await self.orders.add_order_items(order_id, request.items)
        except PersistenceError as e:
            await self._compensate(order_id, e)
        line_views = [
            OrderLineView(
                id=item.id,
                order_id=order_id,
                menu_item_id=item.menu_item_id,
                quantity=item.quantity,
                unit_price=to_money(item.unit_price),
                total_price=to_money(item.total_price),
                special_instructions=item.special_instructions,
            )
            for item in order_items
        ]

        await self._record_initial_status(order_id, customer_id, placed.created_at)
        logger.info(f"[ORDER SUBMISSION] Order {order_id} placed ({placed.order_number})")

        try:
            return await self.queries.get_order(order_id, customer_id)
        except PersistenceError as e:
            logger.warning(
                f"[ORDER SUBMISSION] Re-reading order {order_id} failed, "
                f"returning the inserted rows - {e}"
            )
            return placed.model_copy(update={"items": line_views})

    async def submit_cart(
        self,
        customer_id: str,
        cart: CartStore,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        delivery_fee: Optional[Decimal] = None,
        tax_amount: Decimal = ZERO,
        special_instructions: Optional[str] = None,
    ) -> OrderView:
        """Place an order from the cart; the cart is emptied only on success."""
        async with cart.checkout() as snapshot:
            if snapshot.is_empty or snapshot.vendor is None:
                raise ValidationError("Your cart is empty.")
            request = OrderRequest(
                vendor_id=snapshot.vendor.id,
                items=[
                    OrderLineInput(
                        menu_item_id=line.item_id,
                        quantity=line.quantity,
                        unit_price=line.price,
                    )
                    for line in snapshot.lines
                ],
                delivery_fee=delivery_fee,
                tax_amount=tax_amount,
                payment_method=payment_method,
                special_instructions=special_instructions,
            )
            return await self.create_order(customer_id, request)

    @staticmethod
    def validate(customer_id: str, request: OrderRequest) -> None:
        """Checks that need no round trip to the store."""
        if not customer_id:
            raise ValidationError("You need to sign in to place an order.")
        if not request.vendor_id:
            raise ValidationError("An order needs a vendor.")
        if not request.items:
            raise ValidationError("An order needs at least one item.")
        for item in request.items:
            if not item.menu_item_id:
                raise ValidationError("Every order item needs a menu item.")
            if item.quantity <= 0:
                raise ValidationError("Item quantities must be at least 1.")
            if item.unit_price < 0:
                raise ValidationError("Item prices cannot be negative.")
        if request.delivery_fee is not None and request.delivery_fee < 0:
            raise ValidationError("Delivery fee cannot be negative.")
        if request.tax_amount < 0:
            raise ValidationError("Tax cannot be negative.")

    async def _settle_failed_insert(self, order_id: str, cause: PersistenceError) -> None:
        """The order insert call failed, but its commit may have landed. Always raises.

        A timeout that fires after the commit leaves a pending order with no
        lines behind. Deleting by the pre-generated id either removes that row
        or finds nothing, in which case the original error stands.
        """
        try:
            removed = await self.orders.delete_order(order_id)
        except PersistenceError as delete_error:
            logger.critical(
                f"[ORDER SUBMISSION] POSSIBLY ORPHANED ORDER {order_id}: insert failed "
                f"({cause}) and the cleanup delete failed - {delete_error}. "
                f"Needs manual reconciliation."
            )
            raise PartialFailureError(
                order_id, compensated=False, cause=cause, operation=cause.operation
            ) from delete_error

        if not removed:
            raise cause
        logger.error(
            f"[ORDER SUBMISSION] Order {order_id} was stored although the insert call "
            f"failed ({cause}); deleted it again"
        )
        raise PartialFailureError(
            order_id, compensated=True, cause=cause, operation=cause.operation
        ) from cause

    async def _compensate(self, order_id: str, cause: PersistenceError) -> None:
        """Undo the order row after its lines failed to insert. Always raises."""
        logger.error(
            f"[ORDER SUBMISSION] Line insert failed for order {order_id}, "
            f"deleting the order - {cause}"
        )
        try:
            await self.orders.delete_order(order_id)
        except PersistenceError as delete_error:
            logger.critical(
                f"[ORDER SUBMISSION] ORPHANED ORDER {order_id}: compensating delete "
                f"failed - {delete_error}. Needs manual reconciliation."
            )
            raise PartialFailureError(order_id, compensated=False, cause=cause) from delete_error

        logger.error(f"[ORDER SUBMISSION] Order {order_id} rolled back after line failure")
        raise PartialFailureError(order_id, compensated=True, cause=cause) from cause

    async def _record_initial_status(
        self, order_id: str, customer_id: str, created_at: datetime
    ) -> None:
        # The order is already placed; a missing history row is not worth failing it
        try:
            await self.orders.record_status_change(
                StatusChange(
                    order_id=order_id,
                    from_status=None,
                    to_status=OrderStatus.PENDING,
                    changed_by=customer_id,
                    changed_at=created_at,
                )
            )
        except PersistenceError as e:
            logger.warning(f"[ORDER SUBMISSION] Could not record history for {order_id}: {e}")
