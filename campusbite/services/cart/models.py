"""Cart models."""
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, field_validator

from campusbite.services.money import to_money


class CartLine(BaseModel):
    """One item in the cart."""

    item_id: str
    vendor_id: str
    name: str
    price: Decimal
    quantity: int = 1
    image_url: Optional[str] = None
    vendor_name: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def _quantize_price(cls, value):
        price = to_money(value)
        if price < 0:
            raise ValueError("price cannot be negative")
        return price

    @property
    def key(self) -> tuple:
        return (self.item_id, self.vendor_id)

    @property
    def total(self) -> Decimal:
        return to_money(self.price * self.quantity)


class VendorRef(BaseModel):
    """The vendor the cart is currently locked to."""

    id: str
    name: Optional[str] = None


class CartSnapshot(BaseModel):
    """Serializable cart state."""

    lines: List[CartLine] = []
    vendor: Optional[VendorRef] = None

    @property
    def is_empty(self) -> bool:
        return not self.lines
