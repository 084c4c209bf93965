"""Order status state machine."""
from enum import Enum
from typing import Dict, Optional

from campusbite.core.errors import InvalidTransitionError


class OrderStatus(str, Enum):
    """Lifecycle of a placed order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        """Return the string value of the status."""
        return self.value

    @classmethod
    def from_db(cls, value: str) -> "OrderStatus":
        """Parse a stored status, folding legacy spellings."""
        return cls(LEGACY_STATUS_ALIASES.get(value, value))

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Older rows were written with "completed" for delivered orders
LEGACY_STATUS_ALIASES = {"completed": OrderStatus.DELIVERED.value}

# Vendor-driven progression, one step at a time
NEXT_STATUS: Dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Customers may cancel only before the vendor starts preparing
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Order column stamped when the order enters a status
STATUS_TIMESTAMP_FIELDS: Dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.READY: "prepared_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def next_status(current: OrderStatus) -> OrderStatus:
    """Status an order moves to when the vendor advances it."""
    following: Optional[OrderStatus] = NEXT_STATUS.get(current)
    if following is None:
        raise InvalidTransitionError(
            current.value,
            "advance",
            f"Order is already {current.value.replace('_', ' ')} and cannot be advanced",
        )
    return following


def ensure_cancellable(current: OrderStatus) -> None:
    """Raise unless a customer may still cancel an order in ``current``."""
    if current == OrderStatus.CANCELLED:
        raise InvalidTransitionError(current.value, "cancel", "Order is already cancelled")
    if current not in CANCELLABLE_STATUSES:
        raise InvalidTransitionError(
            current.value,
            "cancel",
            "This order cannot be cancelled at this stage",
        )
