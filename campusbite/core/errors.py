"""Error taxonomy for cart and order operations.

Every error carries a ``user_message`` that is safe to show to the person who
triggered the action. Details from the underlying store (SQL errors, driver
messages) are kept on ``cause`` for logging only.
"""
from typing import Optional


class CampusBiteError(Exception):
    """Base class for all domain errors."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class ValidationError(CampusBiteError):
    """Malformed input caught before any call to the store."""

    user_message = "The request is invalid."


class AuthorizationError(CampusBiteError):
    """The caller is not the owning party for this operation."""

    user_message = "You are not allowed to change this order."


class OrderNotFoundError(CampusBiteError):
    """The order does not exist (or is not visible to the caller)."""

    user_message = "Order not found."

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InvalidTransitionError(CampusBiteError):
    """A status change that the order state machine does not allow."""

    def __init__(self, current_status: str, attempted: str, message: Optional[str] = None):
        super().__init__(
            message
            or f"Cannot {attempted} an order that is {current_status.replace('_', ' ')}"
        )
        self.current_status = current_status
        self.attempted = attempted


class ConcurrentUpdateError(CampusBiteError):
    """The order changed between read and write (lost-update guard)."""

    user_message = "This order was just updated by someone else. Refresh and try again."

    def __init__(self, order_id: str):
        super().__init__()
        self.order_id = order_id


class PersistenceError(CampusBiteError):
    """The store rejected or failed to complete an operation."""

    user_message = "We couldn't reach the server. Please try again."
    retryable = False

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__()
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        detail = f": {self.cause}" if self.cause is not None else ""
        return f"{self.operation} failed{detail}"


class StoreTimeoutError(PersistenceError):
    """The store did not answer within the configured timeout."""

    user_message = "The server is taking too long to respond. Please try again."
    retryable = True


class PartialFailureError(PersistenceError):
    """Order row written but the order as a whole was not placed.

    ``compensated`` tells whether the order row was removed again. When it is
    False the order is orphaned and needs reconciliation.
    """

    def __init__(
        self,
        order_id: str,
        compensated: bool,
        cause: Optional[BaseException] = None,
        operation: str = "insert order lines",
    ):
        super().__init__(operation, cause=cause)
        self.order_id = order_id
        self.compensated = compensated

    @property
    def orphaned(self) -> bool:
        return not self.compensated
