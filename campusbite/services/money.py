"""Money helpers. All amounts are 2dp Decimals."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple, Union

from campusbite.core.config import settings

Amount = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Optional[Amount]) -> Decimal:
    """Coerce a number to a 2dp Decimal. ``None`` becomes zero."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        # Go through str so 0.1 stays 0.1
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def line_total(unit_price: Amount, quantity: int) -> Decimal:
    """Price of one line: unit price times quantity."""
    return to_money(to_money(unit_price) * quantity)


def sum_lines(lines: Iterable[Tuple[Amount, int]]) -> Decimal:
    """Sum ``(unit_price, quantity)`` pairs."""
    total = ZERO
    for unit_price, quantity in lines:
        total += line_total(unit_price, quantity)
    return to_money(total)


def order_total(subtotal: Amount, delivery_fee: Amount, tax_amount: Amount) -> Decimal:
    return to_money(to_money(subtotal) + to_money(delivery_fee) + to_money(tax_amount))


def format_price(amount: Amount, symbol: Optional[str] = None) -> str:
    """Format an amount for display, e.g. ``₵12.50``."""
    if symbol is None:
        symbol = settings.currency_symbol
    return f"{symbol}{to_money(amount):.2f}"
