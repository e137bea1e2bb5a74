from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from billing.exceptions import ValidationError


MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def _dec(value, field: str) -> Decimal:
    if value is None or value == "":
        raise ValidationError(f"{field} is required.")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number, got {value!r}.") from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number.")
    return result


def _money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    grand_total: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "grand_total": self.grand_total,
        }


def line_total(quantity, unit_price) -> Decimal:
    """quantity x unit_price rounded half-up to currency precision."""
    qty = _dec(quantity, "quantity")
    price = _dec(unit_price, "unit_price")
    if qty < 0:
        raise ValidationError("quantity cannot be negative.")
    if price < 0:
        raise ValidationError("unit_price cannot be negative.")
    return _money(qty * price)


def validate_tax_rate(tax_rate) -> Decimal:
    rate = _dec(tax_rate, "tax_rate")
    if rate < 0 or rate > HUNDRED:
        raise ValidationError("tax_rate must be between 0 and 100.")
    return rate


def invoice_totals(line_items: Iterable, tax_rate) -> InvoiceTotals:
    """
    Totals for a set of line items.

    Each line is rounded on its own; the subtotal is the plain sum of those
    rounded lines and tax is rounded once on top of it. Items only need
    ``quantity`` and ``unit_price`` attributes, so model rows and blueprint
    lines are both accepted.
    """
    rate = validate_tax_rate(tax_rate)
    subtotal = ZERO
    for item in line_items:
        subtotal += line_total(item.quantity, item.unit_price)
    tax_amount = _money(subtotal * rate / HUNDRED)
    return InvoiceTotals(subtotal=subtotal, tax_amount=tax_amount, grand_total=subtotal + tax_amount)
