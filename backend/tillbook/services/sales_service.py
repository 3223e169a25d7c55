"""
Sale Transaction Service

Turns a submitted cart and its tenders into one durable sale: the Sale row,
its SaleItems, its SalePayments and one SALE inventory movement per line,
all committed together or not at all.

ALGORITHM (create_sale):
1. Validate lines and tenders, compute totals, and require
   sum(payments) == total exactly. Nothing is written before this passes.
2. Open the write transaction, allocate the sale number, insert the Sale
   and its items.
3. Decrement stock per line through inventory_service.mutate (ascending
   variant_id). Any InsufficientStockError aborts the whole unit of work.
4. Insert payments, commit, then publish sale-completed.

Money is integer cents throughout.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass
from datetime import datetime

from flask import current_app

from ..catalog import get_catalog
from ..errors import (
    ConflictError,
    NotFoundError,
    PaymentMismatchError,
    TransientStoreError,
    ValidationError,
)
from ..events import queue_event, sale_completed
from ..extensions import db
from ..models import PaymentMethod, Sale, SaleItem, SalePayment, Shift
from ..models.inventory import TX_SALE
from ..models.sales import DISCOUNT_TYPE_FIXED, DISCOUNT_TYPE_PERCENT, SALE_STATUS_COMPLETED
from ..models.shifts import SHIFT_STATUS_OPEN
from ..validation import MAX_AMOUNT_CENTS, get_int, get_str
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import mutate


@dataclass(frozen=True)
class SaleLineInput:
    variant_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0
    tax_cents: int = 0

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class PaymentInput:
    payment_method_id: int
    amount_cents: int
    reference_number: str | None = None


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int


@dataclass(frozen=True)
class SaleResult:
    sale: Sale
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale.id,
            "sale_number": self.sale.sale_number,
            "total_cents": self.sale.total_cents,
            "replayed": self.replayed,
        }


# =============================================================================
# REQUEST PARSING
# =============================================================================

def parse_sale_items(raw_items) -> list[SaleLineInput]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        items.append(SaleLineInput(
            variant_id=get_int(raw, "variant_id", required=True),
            quantity=get_int(raw, "quantity", required=True),
            unit_price_cents=get_int(raw, "unit_price_cents", required=True, maximum=MAX_AMOUNT_CENTS),
            discount_cents=get_int(raw, "discount_cents", default=0),
            tax_cents=get_int(raw, "tax_cents", default=0),
        ))
    return items


def parse_payments(raw_payments) -> list[PaymentInput]:
    if not isinstance(raw_payments, list) or not raw_payments:
        raise ValidationError("payments must be a non-empty list")

    payments = []
    for raw in raw_payments:
        if not isinstance(raw, dict):
            raise ValidationError("each payment must be an object")
        payments.append(PaymentInput(
            payment_method_id=get_int(raw, "payment_method_id", required=True),
            amount_cents=get_int(raw, "amount_cents", required=True, maximum=MAX_AMOUNT_CENTS),
            reference_number=get_str(raw, "reference_number", max_length=100),
        ))
    return payments


# =============================================================================
# PURE CHECKS
# =============================================================================

def _validate_items(items: list[SaleLineInput]) -> None:
    if not items:
        raise ValidationError("Cannot create a sale with no items")
    for item in items:
        details = {"variant_id": item.variant_id}
        if item.quantity <= 0:
            raise ValidationError("quantity must be positive", details=details)
        if item.unit_price_cents < 0:
            raise ValidationError("unit_price_cents cannot be negative", details=details)
        if item.discount_cents < 0:
            raise ValidationError("discount_cents cannot be negative", details=details)
        if item.discount_cents > item.line_total_cents:
            raise ValidationError("discount_cents exceeds line total", details=details)
        if item.tax_cents < 0:
            raise ValidationError("tax_cents cannot be negative", details=details)


def _validate_payments(payments: list[PaymentInput]) -> None:
    if not payments:
        raise ValidationError("Cannot create a sale with no payments")
    for payment in payments:
        if payment.amount_cents <= 0:
            raise ValidationError(
                "Payment amount must be positive",
                details={"payment_method_id": payment.payment_method_id, "amount_cents": payment.amount_cents},
            )


def compute_sale_totals(items: list[SaleLineInput], discount_cents: int = 0) -> SaleTotals:
    """
    subtotal = sum(unit_price * quantity)
    tax      = sum(item tax)
    discount = cart discount + sum(line discounts)
    total    = subtotal + tax - discount
    """
    subtotal = sum(item.line_total_cents for item in items)
    tax = sum(item.tax_cents for item in items)
    discount = discount_cents + sum(item.discount_cents for item in items)
    return SaleTotals(
        subtotal_cents=subtotal,
        tax_cents=tax,
        discount_cents=discount,
        total_cents=subtotal + tax - discount,
    )


def request_fingerprint(**request) -> str:
    payload = json.dumps(request, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


# =============================================================================
# IN-TRANSACTION CHECKS
# =============================================================================

def _check_shift(shift_id: int, location_id: int) -> Shift:
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if shift is None:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})
    if shift.status != SHIFT_STATUS_OPEN:
        raise ConflictError(
            "Sales can only be recorded against an open shift",
            details={"shift_id": shift_id, "status": shift.status},
        )
    if shift.location_id != location_id:
        raise ValidationError(
            "Shift belongs to a different location",
            details={"shift_id": shift_id, "shift_location_id": shift.location_id, "location_id": location_id},
        )
    return shift


def _check_payment_methods(payments: list[PaymentInput]) -> None:
    ids = {p.payment_method_id for p in payments}
    methods = {
        m.id: m
        for m in db.session.query(PaymentMethod).filter(PaymentMethod.id.in_(ids)).all()
    }
    for payment in payments:
        method = methods.get(payment.payment_method_id)
        if method is None:
            raise NotFoundError(
                "Payment method not found",
                details={"payment_method_id": payment.payment_method_id},
            )
        if not method.is_active:
            raise ValidationError(
                f"Payment method '{method.name}' is not active",
                details={"payment_method_id": method.id},
            )
        if method.requires_reference and not payment.reference_number:
            raise ValidationError(
                f"Payment method '{method.name}' requires a reference number",
                details={"payment_method_id": method.id},
            )


def _check_catalog(location_id: int, items: list[SaleLineInput], allow_price_override: bool) -> None:
    lookup = get_catalog()
    if lookup is None:
        return
    for item in items:
        price = lookup(item.variant_id, location_id)
        if price is None:
            raise NotFoundError(
                "Variant is not sold at this location",
                details={"variant_id": item.variant_id, "location_id": location_id},
            )
        if price != item.unit_price_cents and not allow_price_override:
            raise ValidationError(
                "Unit price does not match catalog price",
                details={
                    "variant_id": item.variant_id,
                    "catalog_price_cents": price,
                    "unit_price_cents": item.unit_price_cents,
                },
            )


def _find_by_idempotency_key(key: str) -> Sale | None:
    return db.session.query(Sale).filter_by(idempotency_key=key).first()


def _replay(existing: Sale, fingerprint: str) -> SaleResult:
    if existing.request_fingerprint != fingerprint:
        raise ConflictError(
            "Idempotency key was already used for a different sale request",
            details={"sale_id": existing.id},
        )
    return SaleResult(sale=existing, replayed=True)


# =============================================================================
# CREATE
# =============================================================================

def create_sale(
    *,
    location_id: int,
    actor_id: int,
    items: list[SaleLineInput],
    payments: list[PaymentInput],
    discount_cents: int = 0,
    discount_type: str | None = None,
    discount_reason: str | None = None,
    customer_id: int | None = None,
    shift_id: int | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
    allow_price_override: bool = False,
) -> SaleResult:
    """
    Create a completed sale atomically.

    Raises ValidationError / PaymentMismatchError before any write,
    InsufficientStockError (nothing persisted), NotFoundError for unknown
    shift / payment method / catalog variant, ConflictError for a closed
    shift or a reused idempotency key, TransientStoreError when the store
    aborts.

    A retried call carrying the same idempotency_key and the same request
    returns the original sale with replayed=True.
    """
    if not location_id:
        raise ValidationError("location_id is required")
    if not actor_id:
        raise ValidationError("actor_id is required")
    _validate_items(items)
    _validate_payments(payments)

    if discount_cents < 0:
        raise ValidationError("discount_cents cannot be negative")
    if discount_type is not None and discount_type not in (DISCOUNT_TYPE_PERCENT, DISCOUNT_TYPE_FIXED):
        raise ValidationError("discount_type must be PERCENT or FIXED")

    totals = compute_sale_totals(items, discount_cents)
    discountable = totals.subtotal_cents - sum(item.discount_cents for item in items)
    if discount_cents > discountable:
        raise ValidationError(
            "discount_cents exceeds the discounted subtotal",
            details={"discount_cents": discount_cents, "discountable_cents": discountable},
        )
    if totals.total_cents < 0:
        raise ValidationError(
            "Sale total cannot be negative",
            details={"total_cents": totals.total_cents},
        )

    tendered = sum(p.amount_cents for p in payments)
    if tendered != totals.total_cents:
        raise PaymentMismatchError(
            "Payments do not equal the sale total",
            details={
                "total_cents": totals.total_cents,
                "tendered_cents": tendered,
                "difference_cents": tendered - totals.total_cents,
            },
        )

    fingerprint = None
    if idempotency_key:
        fingerprint = request_fingerprint(
            location_id=location_id,
            actor_id=actor_id,
            items=[asdict(i) for i in items],
            payments=[asdict(p) for p in payments],
            discount_cents=discount_cents,
            discount_type=discount_type,
            customer_id=customer_id,
            shift_id=shift_id,
        )

    def _op():
        begin_write()

        if idempotency_key:
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                db.session.commit()
                return _replay(existing, fingerprint)

        if shift_id is not None:
            _check_shift(shift_id, location_id)
        _check_payment_methods(payments)
        _check_catalog(location_id, items, allow_price_override)

        sale_number = next_document_number(
            location_id=location_id,
            document_type="SALE",
            prefix=current_app.config.get("TILLBOOK_SALE_PREFIX", "S"),
        )

        sale = Sale(
            sale_number=sale_number,
            location_id=location_id,
            shift_id=shift_id,
            actor_id=actor_id,
            customer_id=customer_id,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            discount_cents=totals.discount_cents,
            discount_type=discount_type,
            discount_reason=discount_reason,
            total_cents=totals.total_cents,
            status=SALE_STATUS_COMPLETED,
            notes=notes,
            idempotency_key=idempotency_key,
            request_fingerprint=fingerprint,
        )
        db.session.add(sale)
        db.session.flush()

        sale_items = []
        for item in items:
            sale_item = SaleItem(
                sale_id=sale.id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                discount_cents=item.discount_cents,
                tax_cents=item.tax_cents,
                line_total_cents=item.line_total_cents,
            )
            db.session.add(sale_item)
            sale_items.append(sale_item)
        db.session.flush()

        # Stock rows are locked in ascending variant order across all writers
        for sale_item in sorted(sale_items, key=lambda si: (si.variant_id, si.id)):
            result = mutate(
                variant_id=sale_item.variant_id,
                location_id=location_id,
                quantity_change=-sale_item.quantity,
                type=TX_SALE,
                reference_type="SALE",
                reference_id=sale.id,
                actor_id=actor_id,
                note=f"Sale {sale_number}",
            )
            sale_item.inventory_transaction_id = result.transaction.id

        for payment in payments:
            db.session.add(SalePayment(
                sale_id=sale.id,
                payment_method_id=payment.payment_method_id,
                amount_cents=payment.amount_cents,
                reference_number=payment.reference_number,
            ))
        db.session.flush()

        queue_event(
            db.session,
            sale_completed,
            location_id,
            sale_id=sale.id,
            sale_number=sale.sale_number,
            total_cents=sale.total_cents,
            shift_id=shift_id,
        )

        db.session.commit()
        current_app.logger.info(
            "Sale %s completed at location %d: %d cents, %d line(s)",
            sale.sale_number, location_id, sale.total_cents, len(sale_items),
        )
        return SaleResult(sale=sale)

    try:
        return run_with_retry(_op)
    except TransientStoreError:
        # A concurrent submission with the same key may have won the insert
        if idempotency_key:
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                return _replay(existing, fingerprint)
        raise


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def sale_detail(sale: Sale) -> dict:
    return {
        "sale": sale.to_dict(),
        "items": [item.to_dict() for item in sale.items],
        "payments": [payment.to_dict() for payment in sale.payments],
    }


def list_sales(
    *,
    location_id: int | None = None,
    status: str | None = None,
    shift_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> list[Sale]:
    q = db.session.query(Sale)
    if location_id is not None:
        q = q.filter(Sale.location_id == location_id)
    if status:
        q = q.filter(Sale.status == status)
    if shift_id is not None:
        q = q.filter(Sale.shift_id == shift_id)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    q = q.order_by(Sale.created_at.desc(), Sale.id.desc())
    return q.offset((max(page, 1) - 1) * limit).limit(limit).all()
