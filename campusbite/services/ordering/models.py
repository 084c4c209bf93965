"""Order models."""
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, field_validator

from campusbite.services.money import to_money
from campusbite.services.ordering.status import OrderStatus

logger = logging.getLogger(__name__)


class PaymentMethod(str, Enum):
    """Accepted payment methods."""

    CASH = "cash"
    MOBILE_MONEY = "mobile_money"
    CARD = "card"

    @classmethod
    def from_db(cls, value: Optional[str]) -> Optional["PaymentMethod"]:
        """Parse a stored payment method, folding variant spellings.

        Unrecognised values read as ``None`` so one odd row cannot break a
        whole order list.
        """
        if not value:
            return None
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        normalized = LEGACY_PAYMENT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            logger.warning(f"[ORDERS] Unknown stored payment method {value!r}, ignoring it")
            return None


# Spellings written by older clients
LEGACY_PAYMENT_ALIASES = {
    "momo": PaymentMethod.MOBILE_MONEY.value,
    "mobilemoney": PaymentMethod.MOBILE_MONEY.value,
    "cash_on_delivery": PaymentMethod.CASH.value,
    "cod": PaymentMethod.CASH.value,
    "credit_card": PaymentMethod.CARD.value,
    "debit_card": PaymentMethod.CARD.value,
}


class OrderLineInput(BaseModel):
    """One line of an order being placed."""

    menu_item_id: str
    quantity: int
    unit_price: Decimal
    special_instructions: Optional[str] = None

    @field_validator("unit_price", mode="before")
    @classmethod
    def _quantize(cls, value):
        return to_money(value)


class OrderRequest(BaseModel):
    """Everything needed to place an order.

    Subtotal and total are always computed from ``items``; the request has no
    way to supply them.
    """

    vendor_id: str
    items: List[OrderLineInput]
    delivery_fee: Optional[Decimal] = None
    tax_amount: Decimal = Decimal("0.00")
    payment_method: PaymentMethod = PaymentMethod.CASH
    special_instructions: Optional[str] = None

    @field_validator("delivery_fee", "tax_amount", mode="before")
    @classmethod
    def _quantize(cls, value):
        if value is None:
            return None
        return to_money(value)


class VendorSummary(BaseModel):
    """Vendor fields shown next to an order."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    business_name: str
    logo_url: Optional[str] = None
    business_phone: Optional[str] = None


class CustomerSummary(BaseModel):
    """Customer fields shown next to an order."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    phone: Optional[str] = None


class OrderLineView(BaseModel):
    """Order line with the menu item's display fields."""

    id: str
    order_id: str
    menu_item_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    special_instructions: Optional[str] = None
    item_name: Optional[str] = None
    item_image_url: Optional[str] = None


class StatusChange(BaseModel):
    """A recorded status transition."""

    order_id: str
    from_status: Optional[OrderStatus] = None
    to_status: OrderStatus
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    changed_at: datetime


class OrderView(BaseModel):
    """An order stitched together with its vendor, customer and lines."""

    id: str
    order_number: str
    customer_id: str
    vendor_id: str
    status: OrderStatus
    subtotal: Decimal
    delivery_fee: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    payment_method: Optional[PaymentMethod] = None
    payment_status: str = "pending"
    special_instructions: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int = 1
    vendor: Optional[VendorSummary] = None
    customer: Optional[CustomerSummary] = None
    items: List[OrderLineView] = []
    status_history: List[StatusChange] = []

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.items)
