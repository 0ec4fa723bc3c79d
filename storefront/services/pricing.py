"""
Price projection shared by the cart drawer, cart page, checkout review and
checkout summary. All amounts are VND as ``Decimal``.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple, Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _d(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def unit_price(listed_price: Optional[Number], discount_percent: Optional[Number] = None) -> Decimal:
    """listed_price × (1 − discount_percent/100); a missing discount means 0%."""
    price = _d(listed_price)
    discount = _d(discount_percent)
    if discount <= 0:
        return price
    return price * (1 - discount / HUNDRED)


def line_total(price: Number, quantity: int) -> Decimal:
    return _d(price) * quantity


def subtotal(lines: Iterable[Tuple[Number, int]]) -> Decimal:
    """Sum of (unit price × quantity) pairs."""
    return sum((line_total(price, quantity) for price, quantity in lines), ZERO)


def applied_discount(flat_discount: Number, order_subtotal: Number) -> Decimal:
    # Never discount more than the goods are worth
    return min(_d(flat_discount), _d(order_subtotal))


def order_total(order_subtotal: Number, flat_discount: Number, shipping_fee: Number) -> Decimal:
    """max(0, subtotal − min(discount, subtotal) + shipping_fee)."""
    total = _d(order_subtotal) - applied_discount(flat_discount, order_subtotal) + _d(shipping_fee)
    return max(ZERO, total)


def to_vnd(amount: Number) -> int:
    """Whole-dong amount for payloads and payment gateways."""
    return int(_d(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_price(amount: Optional[Number], suffix: str = "₫") -> str:
    """vi-VN display: dot-grouped thousands with a currency suffix, e.g. 1.250.000₫."""
    grouped = f"{to_vnd(amount or 0):,}".replace(",", ".")
    return f"{grouped}{suffix}"
