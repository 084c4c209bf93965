"""Unit tests for order submission."""
import logging
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

from campusbite.core.errors import (
    PartialFailureError,
    PersistenceError,
    StoreTimeoutError,
    ValidationError,
)
from campusbite.services.ordering.models import OrderLineInput, OrderRequest, PaymentMethod
from campusbite.services.ordering.status import OrderStatus
from campusbite.services.ordering.submission import OrderSubmissionService
from tests.conftest import CUSTOMER_ID, OTHER_VENDOR_ID, VENDOR_ID, make_line


def line_failure():
    return AsyncMock(side_effect=PersistenceError("insert order lines", cause=Exception("fk")))


class TestCreateOrder:
    """Test placing orders."""

    @pytest.mark.asyncio
    async def test_create_order_computes_totals(self, place_order):
        """2 x 10.00 + 1 x 5.00 with 2.00 delivery."""
        order = await place_order()

        assert order.status == OrderStatus.PENDING
        assert order.subtotal == Decimal("25.00")
        assert order.delivery_fee == Decimal("2.00")
        assert order.total_amount == Decimal("27.00")
        assert order.payment_method == PaymentMethod.MOBILE_MONEY
        assert order.customer_id == CUSTOMER_ID
        assert order.vendor.business_name == "Jollof Junction"
        assert order.item_count == 3
        assert {line.item_name for line in order.items} == {"Jollof Rice", "Grilled Chicken"}

    @pytest.mark.asyncio
    async def test_initial_history_entry(self, place_order):
        order = await place_order()

        assert len(order.status_history) == 1
        entry = order.status_history[0]
        assert entry.from_status is None
        assert entry.to_status == OrderStatus.PENDING
        assert entry.changed_by == CUSTOMER_ID

    @pytest.mark.asyncio
    async def test_delivery_fee_defaults_to_vendor_fee(self, seeded_db, order_submission):
        request = OrderRequest(
            vendor_id=VENDOR_ID,
            items=[OrderLineInput(menu_item_id="item-jollof", quantity=1, unit_price="10.00")],
        )

        order = await order_submission.create_order(CUSTOMER_ID, request)

        assert order.delivery_fee == Decimal("2.00")
        assert order.total_amount == Decimal("12.00")

    @pytest.mark.asyncio
    async def test_tax_added_to_total(self, seeded_db, order_submission, jollof_request):
        request = jollof_request.model_copy(update={"tax_amount": Decimal("1.25")})

        order = await order_submission.create_order(CUSTOMER_ID, request)

        assert order.total_amount == Decimal("28.25")


class TestValidation:
    """Test checks made before anything is written."""

    @pytest.mark.parametrize(
        "customer_id,request_kwargs",
        [
            ("", {}),
            (CUSTOMER_ID, {"vendor_id": ""}),
            (CUSTOMER_ID, {"items": []}),
            (CUSTOMER_ID, {"delivery_fee": "-1"}),
            (CUSTOMER_ID, {"tax_amount": "-0.50"}),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejected_requests_write_nothing(
        self, seeded_db, order_submission, order_persistence, customer_id, request_kwargs
    ):
        payload = {
            "vendor_id": VENDOR_ID,
            "items": [{"menu_item_id": "item-jollof", "quantity": 1, "unit_price": "10.00"}],
        }
        payload.update(request_kwargs)
        request = OrderRequest(**payload)

        with pytest.raises(ValidationError):
            await order_submission.create_order(customer_id, request)

        assert await order_persistence.list_orders() == []

    @pytest.mark.parametrize(
        "line",
        [
            {"menu_item_id": "item-jollof", "quantity": 0, "unit_price": "10.00"},
            {"menu_item_id": "item-jollof", "quantity": 1, "unit_price": "-10.00"},
            {"menu_item_id": "", "quantity": 1, "unit_price": "10.00"},
        ],
    )
    def test_bad_lines(self, line):
        request = OrderRequest(vendor_id=VENDOR_ID, items=[line])
        with pytest.raises(ValidationError):
            OrderSubmissionService.validate(CUSTOMER_ID, request)

    @pytest.mark.asyncio
    async def test_vendor_not_accepting_orders(self, seeded_db, order_submission):
        request = OrderRequest(
            vendor_id="vendor-closed",
            items=[OrderLineInput(menu_item_id="item-closed", quantity=1, unit_price="6.00")],
        )

        with pytest.raises(ValidationError) as exc_info:
            await order_submission.create_order(CUSTOMER_ID, request)
        assert "not accepting orders" in exc_info.value.user_message

    @pytest.mark.asyncio
    async def test_unknown_vendor(self, seeded_db, order_submission):
        request = OrderRequest(
            vendor_id="vendor-nope",
            items=[OrderLineInput(menu_item_id="item-jollof", quantity=1, unit_price="6.00")],
        )

        with pytest.raises(ValidationError):
            await order_submission.create_order(CUSTOMER_ID, request)

    @pytest.mark.asyncio
    async def test_minimum_order_amount(self, seeded_db, order_submission):
        """Waakye Corner needs at least 15.00 before delivery."""
        request = OrderRequest(
            vendor_id=OTHER_VENDOR_ID,
            items=[OrderLineInput(menu_item_id="item-waakye", quantity=1, unit_price="8.00")],
        )

        with pytest.raises(ValidationError) as exc_info:
            await order_submission.create_order(CUSTOMER_ID, request)
        assert "15.00" in exc_info.value.user_message

        request.items[0].quantity = 2
        order = await order_submission.create_order(CUSTOMER_ID, request)
        assert order.subtotal == Decimal("16.00")
        assert order.delivery_fee == Decimal("1.50")


class TestCompensation:
    """Test rollback when order lines fail to insert."""

    @pytest.mark.asyncio
    async def test_line_failure_deletes_order(
        self, seeded_db, order_submission, order_persistence, order_queries, jollof_request, caplog
    ):
        order_persistence.add_order_items = line_failure()

        with caplog.at_level(logging.ERROR):
            with pytest.raises(PartialFailureError) as exc_info:
                await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert exc_info.value.compensated
        assert not exc_info.value.orphaned
        assert await order_persistence.get_order_row(exc_info.value.order_id) is None
        assert await order_queries.list_customer_orders(CUSTOMER_ID) == []
        assert "rolled back" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_compensation_reports_orphan(
        self, seeded_db, order_submission, order_persistence, jollof_request, caplog
    ):
        order_persistence.add_order_items = line_failure()
        order_persistence.delete_order = AsyncMock(
            side_effect=PersistenceError("delete order", cause=Exception("timeout"))
        )

        with caplog.at_level(logging.ERROR):
            with pytest.raises(PartialFailureError) as exc_info:
                await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert exc_info.value.orphaned
        assert await order_persistence.get_order_row(exc_info.value.order_id) is not None
        critical = [record for record in caplog.records if record.levelno == logging.CRITICAL]
        assert critical
        assert exc_info.value.order_id in critical[0].getMessage()
        assert "ORPHANED ORDER" in critical[0].getMessage()

    @pytest.mark.asyncio
    async def test_order_insert_failure_writes_nothing(
        self, seeded_db, order_submission, order_persistence, jollof_request
    ):
        order_persistence.create_order = AsyncMock(side_effect=PersistenceError("insert order"))
        order_persistence.add_order_items = AsyncMock()

        with pytest.raises(PersistenceError) as exc_info:
            await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert not isinstance(exc_info.value, PartialFailureError)
        order_persistence.add_order_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_after_order_commit_deletes_order(
        self,
        seeded_db,
        order_submission,
        order_persistence,
        order_queries,
        jollof_request,
        stall_next_commit,
    ):
        """The order row commits, then the call times out: no line-less order survives."""
        order_persistence.timeout = 0.1
        stall_next_commit()

        with pytest.raises(PartialFailureError) as exc_info:
            await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert exc_info.value.compensated
        assert exc_info.value.operation == "insert order"
        assert isinstance(exc_info.value.cause, StoreTimeoutError)
        assert await order_persistence.get_order_row(exc_info.value.order_id) is None
        assert await order_queries.list_customer_orders(CUSTOMER_ID) == []

    @pytest.mark.asyncio
    async def test_timeout_before_order_commit_is_retryable(
        self, seeded_db, order_submission, order_persistence, order_queries, jollof_request
    ):
        order_persistence.create_order = AsyncMock(side_effect=StoreTimeoutError("insert order"))

        with pytest.raises(StoreTimeoutError) as exc_info:
            await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert exc_info.value.retryable
        assert await order_queries.list_customer_orders(CUSTOMER_ID) == []

    @pytest.mark.asyncio
    async def test_timeout_with_failed_cleanup_reports_orphan(
        self, seeded_db, order_submission, order_persistence, jollof_request, caplog
    ):
        order_persistence.create_order = AsyncMock(side_effect=StoreTimeoutError("insert order"))
        order_persistence.delete_order = AsyncMock(
            side_effect=PersistenceError("delete order", cause=Exception("unreachable"))
        )

        with caplog.at_level(logging.ERROR):
            with pytest.raises(PartialFailureError) as exc_info:
                await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert exc_info.value.orphaned
        critical = [record for record in caplog.records if record.levelno == logging.CRITICAL]
        assert exc_info.value.order_id in critical[0].getMessage()

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_order(
        self, seeded_db, order_submission, order_persistence, jollof_request
    ):
        order_persistence.record_status_change = AsyncMock(
            side_effect=PersistenceError("insert status history")
        )

        order = await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert order.total_amount == Decimal("27.00")
        assert order.status_history == []

    @pytest.mark.asyncio
    async def test_refetch_failure_returns_inserted_order(
        self, seeded_db, order_submission, order_queries, jollof_request
    ):
        order_queries.get_order = AsyncMock(side_effect=PersistenceError("select order"))

        order = await order_submission.create_order(CUSTOMER_ID, jollof_request)

        assert order.subtotal == Decimal("25.00")
        assert order.item_count == 3
        assert order.vendor is None


class TestSubmitCart:
    """Test placing an order from the cart."""

    @pytest.mark.asyncio
    async def test_submit_cart_clears_on_success(self, seeded_db, order_submission, cart):
        await cart.add_item(make_line("item-jollof", price="10.00", quantity=2))
        await cart.add_item(make_line("item-chicken", price="5.00"))

        order = await order_submission.submit_cart(
            CUSTOMER_ID, cart, delivery_fee=Decimal("2.00")
        )

        assert order.total_amount == Decimal("27.00")
        assert order.payment_method == PaymentMethod.CASH
        assert cart.is_empty
        await cart.flush()

    @pytest.mark.asyncio
    async def test_submit_empty_cart(self, seeded_db, order_submission, cart):
        with pytest.raises(ValidationError):
            await order_submission.submit_cart(CUSTOMER_ID, cart)

    @pytest.mark.asyncio
    async def test_failed_submit_keeps_cart(
        self, seeded_db, order_submission, order_persistence, cart
    ):
        await cart.add_item(make_line("item-jollof", quantity=2))
        order_persistence.add_order_items = line_failure()

        with pytest.raises(PartialFailureError):
            await order_submission.submit_cart(CUSTOMER_ID, cart)

        assert cart.get_total_items() == 2
        await cart.flush()
