# Overview: Pure cart arithmetic shared by the till (advisory) and the server (authoritative).

"""
Cart / discount calculator.

No I/O and no floating point: amounts are integer cents, percentages and
rates are Decimals, and every rounding step is half-up to the cent, so the
same inputs always produce the same outputs wherever this runs.

    subtotal = sum(line_total) - sum(line_discount)
    tax      = subtotal * tax_rate
    total    = subtotal + tax - cart_discount

Discounts are clamped: a line discount never exceeds its line total and a
cart discount never exceeds the subtotal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..errors import ValidationError
from ..models.sales import DISCOUNT_TYPE_FIXED, DISCOUNT_TYPE_PERCENT
from ..validation import MAX_AMOUNT_CENTS, get_int


_HUNDRED = Decimal(100)
_BPS = Decimal(10_000)


@dataclass(frozen=True)
class CartLine:
    variant_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0


@dataclass(frozen=True)
class CartDiscount:
    type: str
    # Percent (e.g. Decimal("12.5")) for PERCENT, cents for FIXED
    value: Decimal


@dataclass(frozen=True)
class LineTotals:
    variant_id: int
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    discount_cents: int
    net_cents: int

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "discount_cents": self.discount_cents,
            "net_cents": self.net_cents,
        }


@dataclass(frozen=True)
class CartTotals:
    lines: list[LineTotals] = field(default_factory=list)
    gross_cents: int = 0
    line_discount_cents: int = 0
    subtotal_cents: int = 0
    tax_rate_bps: int = 0
    tax_cents: int = 0
    discount_type: str | None = None
    discount_cents: int = 0
    total_cents: int = 0
    item_count: int = 0

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "gross_cents": self.gross_cents,
            "line_discount_cents": self.line_discount_cents,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "discount_type": self.discount_type,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "item_count": self.item_count,
        }


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def line_discount_cents(line: CartLine) -> int:
    return min(line.discount_cents, line.unit_price_cents * line.quantity)


def cart_discount_cents(subtotal_cents: int, discount: CartDiscount | None) -> int:
    if discount is None:
        return 0
    if discount.type == DISCOUNT_TYPE_PERCENT:
        amount = round_half_up(Decimal(subtotal_cents) * discount.value / _HUNDRED)
    else:
        amount = round_half_up(Decimal(discount.value))
    return min(amount, subtotal_cents)


def tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    return round_half_up(Decimal(subtotal_cents) * Decimal(tax_rate_bps) / _BPS)


def _validate_line(line: CartLine) -> None:
    if line.quantity <= 0:
        raise ValidationError("quantity must be positive", details={"variant_id": line.variant_id})
    if line.unit_price_cents < 0:
        raise ValidationError("unit_price_cents cannot be negative", details={"variant_id": line.variant_id})
    if line.discount_cents < 0:
        raise ValidationError("discount_cents cannot be negative", details={"variant_id": line.variant_id})


def calculate_cart(
    lines: list[CartLine],
    *,
    tax_rate_bps: int = 0,
    discount: CartDiscount | None = None,
) -> CartTotals:
    if tax_rate_bps < 0:
        raise ValidationError("tax_rate_bps cannot be negative")

    line_totals = []
    for line in lines:
        _validate_line(line)
        gross = line.unit_price_cents * line.quantity
        disc = line_discount_cents(line)
        line_totals.append(LineTotals(
            variant_id=line.variant_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=gross,
            discount_cents=disc,
            net_cents=gross - disc,
        ))

    gross_cents = sum(lt.line_total_cents for lt in line_totals)
    line_discounts = sum(lt.discount_cents for lt in line_totals)
    subtotal = gross_cents - line_discounts
    tax = tax_cents(subtotal, tax_rate_bps)
    cart_discount = cart_discount_cents(subtotal, discount)

    return CartTotals(
        lines=line_totals,
        gross_cents=gross_cents,
        line_discount_cents=line_discounts,
        subtotal_cents=subtotal,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax,
        discount_type=discount.type if discount else None,
        discount_cents=cart_discount,
        total_cents=subtotal + tax - cart_discount,
        item_count=sum(lt.quantity for lt in line_totals),
    )


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def parse_discount(payload: dict | None) -> CartDiscount | None:
    """
    {"type": "PERCENT", "value": "12.5"} or {"type": "FIXED", "value": 200}.
    Percent values accept numbers or numeric strings; fixed values are cents.
    """
    if not payload:
        return None
    dtype = str(payload.get("type") or "").upper()
    raw = payload.get("value")
    if dtype not in (DISCOUNT_TYPE_PERCENT, DISCOUNT_TYPE_FIXED):
        raise ValidationError("discount type must be PERCENT or FIXED")
    if raw is None or isinstance(raw, bool):
        raise ValidationError("discount value is required")

    if dtype == DISCOUNT_TYPE_FIXED:
        if not isinstance(raw, int):
            raise ValidationError("FIXED discount value must be integer cents")
        value = Decimal(raw)
    else:
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            raise ValidationError("PERCENT discount value must be numeric")
        if not value.is_finite() or value > _HUNDRED:
            raise ValidationError("PERCENT discount must be between 0 and 100")

    if value < 0:
        raise ValidationError("discount value cannot be negative")
    return CartDiscount(type=dtype, value=value)


def parse_cart(payload: dict) -> tuple[list[CartLine], CartDiscount | None]:
    """Parse {"items": [...], "discount": {...}} into calculator inputs."""
    items = payload.get("items")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    lines = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        lines.append(CartLine(
            variant_id=get_int(raw, "variant_id", required=True),
            quantity=get_int(raw, "quantity", required=True),
            unit_price_cents=get_int(raw, "unit_price_cents", required=True, maximum=MAX_AMOUNT_CENTS),
            discount_cents=get_int(raw, "discount_cents", default=0),
        ))
    return lines, parse_discount(payload.get("discount"))
