# Overview: Service-layer operations for cash-drawer shifts; encapsulates business logic.

"""
Shift Lifecycle Service

open -> closed -> reconciled, linear. One open shift per actor, enforced
by the check in clock_in and by the partial unique index uq_shifts_actor_open.

Expected cash is derived, never tracked incrementally:

    expected_cash = opening_cash + sum(cash-type payments on completed
                                       sales whose shift_id is this shift)

clock_out writes that figure once; after closing the financial fields are
frozen and later remarks are appended to notes.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PaymentMethod, Sale, SalePayment, Shift
from ..models.sales import METHOD_TYPE_CASH, SALE_STATUS_COMPLETED, SALE_STATUS_VOIDED
from ..models.shifts import SHIFT_STATUS_CLOSED, SHIFT_STATUS_OPEN, SHIFT_STATUS_RECONCILED
from ..time_utils import utcnow
from ..validation import MAX_AMOUNT_CENTS
from .concurrency import begin_write, lock_for_update, run_with_retry


def _validate_cash(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be integer cents")
    if value < 0 or value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{name} out of range", details={name: value})
    return value


def _append_note(existing: str | None, note: str | None) -> str | None:
    note = (note or "").strip()
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


def _lock_shift(shift_id: int) -> Shift:
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if shift is None:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})
    return shift


def get_active_shift(actor_id: int) -> Shift | None:
    return db.session.query(Shift).filter_by(actor_id=actor_id, status=SHIFT_STATUS_OPEN).first()


def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})
    return shift


# =============================================================================
# LIFECYCLE
# =============================================================================

def clock_in(
    *,
    actor_id: int,
    location_id: int,
    terminal_id: str | None = None,
    opening_cash_cents: int = 0,
    notes: str | None = None,
) -> Shift:
    if not actor_id:
        raise ValidationError("actor_id is required")
    if not location_id:
        raise ValidationError("location_id is required")
    _validate_cash("opening_cash_cents", opening_cash_cents)

    def _op():
        begin_write()
        existing = get_active_shift(actor_id)
        if existing is not None:
            raise ConflictError(
                "Actor already has an open shift",
                details={"shift_id": existing.id, "actor_id": actor_id},
            )

        shift = Shift(
            actor_id=actor_id,
            location_id=location_id,
            terminal_id=terminal_id,
            status=SHIFT_STATUS_OPEN,
            opening_cash_cents=opening_cash_cents,
            start_time=utcnow(),
            notes=(notes or "").strip() or None,
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Lost the race to a concurrent clock-in for the same actor
            raise ConflictError(
                "Actor already has an open shift",
                details={"actor_id": actor_id},
            ) from exc

        db.session.commit()
        current_app.logger.info(
            "Shift %d opened for actor %d at location %d (terminal %s)",
            shift.id, actor_id, location_id, terminal_id,
        )
        return shift

    return run_with_retry(_op)


def compute_expected_cash(shift: Shift) -> int:
    """Read-only: opening cash plus cash-type payments on the shift's completed sales."""
    cash_sales = db.session.query(
        func.coalesce(func.sum(SalePayment.amount_cents), 0)
    ).join(
        Sale, Sale.id == SalePayment.sale_id
    ).join(
        PaymentMethod, PaymentMethod.id == SalePayment.payment_method_id
    ).filter(
        Sale.shift_id == shift.id,
        Sale.status == SALE_STATUS_COMPLETED,
        PaymentMethod.method_type == METHOD_TYPE_CASH,
    ).scalar()
    return (shift.opening_cash_cents or 0) + int(cash_sales or 0)


def clock_out(
    *,
    shift_id: int,
    closing_cash_cents: int,
    notes: str | None = None,
    actor_id: int | None = None,
    manager_override: bool = False,
) -> Shift:
    """
    Close a shift and compute its cash variance.

    Only the owning actor may close it unless manager_override is set.
    """
    _validate_cash("closing_cash_cents", closing_cash_cents)

    def _op():
        begin_write()
        shift = _lock_shift(shift_id)

        if shift.status != SHIFT_STATUS_OPEN:
            raise ConflictError(
                "Shift is not open",
                details={"shift_id": shift.id, "status": shift.status},
            )
        if actor_id is not None and shift.actor_id != actor_id and not manager_override:
            raise ConflictError(
                "Only the shift owner can clock out without manager approval",
                details={"shift_id": shift.id},
            )

        expected = compute_expected_cash(shift)
        shift.expected_cash_cents = expected
        shift.closing_cash_cents = closing_cash_cents
        shift.cash_difference_cents = closing_cash_cents - expected
        shift.end_time = utcnow()
        shift.status = SHIFT_STATUS_CLOSED
        shift.notes = _append_note(shift.notes, notes)

        db.session.commit()
        current_app.logger.info(
            "Shift %d closed: expected %d, counted %d, difference %d",
            shift.id, expected, closing_cash_cents, shift.cash_difference_cents,
        )
        return shift

    return run_with_retry(_op)


def reconcile(*, shift_id: int, actor_id: int | None = None, notes: str | None = None) -> Shift:
    """closed -> reconciled. Bookkeeping only; no financial field changes."""

    def _op():
        begin_write()
        shift = _lock_shift(shift_id)
        if shift.status != SHIFT_STATUS_CLOSED:
            raise ConflictError(
                "Only closed shifts can be reconciled",
                details={"shift_id": shift.id, "status": shift.status},
            )

        shift.status = SHIFT_STATUS_RECONCILED
        shift.reconciled_by = actor_id
        shift.reconciled_at = utcnow()
        shift.notes = _append_note(shift.notes, notes)

        db.session.commit()
        current_app.logger.info("Shift %d reconciled by actor %s", shift.id, actor_id)
        return shift

    return run_with_retry(_op)


# =============================================================================
# REPORTING
# =============================================================================

def get_shift_summary(shift_id: int) -> dict:
    shift = get_shift(shift_id)

    completed = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.coalesce(func.sum(Sale.discount_cents), 0),
        func.coalesce(func.sum(Sale.tax_cents), 0),
    ).filter(
        Sale.shift_id == shift.id,
        Sale.status == SALE_STATUS_COMPLETED,
    ).one()

    voided_count = db.session.query(func.count(Sale.id)).filter(
        Sale.shift_id == shift.id,
        Sale.status == SALE_STATUS_VOIDED,
    ).scalar()

    by_method = db.session.query(
        PaymentMethod.name,
        PaymentMethod.method_type,
        func.count(SalePayment.id),
        func.coalesce(func.sum(SalePayment.amount_cents), 0),
    ).join(
        SalePayment, SalePayment.payment_method_id == PaymentMethod.id
    ).join(
        Sale, Sale.id == SalePayment.sale_id
    ).filter(
        Sale.shift_id == shift.id,
        Sale.status == SALE_STATUS_COMPLETED,
    ).group_by(
        PaymentMethod.id, PaymentMethod.name, PaymentMethod.method_type
    ).order_by(PaymentMethod.name).all()

    if shift.status == SHIFT_STATUS_OPEN:
        expected = compute_expected_cash(shift)
    else:
        expected = shift.expected_cash_cents

    return {
        "shift": shift.to_dict(),
        "transaction_count": int(completed[0]),
        "total_sales_cents": int(completed[1]),
        "total_discount_cents": int(completed[2]),
        "total_tax_cents": int(completed[3]),
        "voided_count": int(voided_count or 0),
        "payments_by_method": [
            {
                "method_name": name,
                "method_type": method_type,
                "count": int(count),
                "amount_cents": int(amount),
            }
            for name, method_type, count, amount in by_method
        ],
        "expected_cash_cents": expected,
    }


def get_current_shift_summary(actor_id: int) -> dict | None:
    shift = get_active_shift(actor_id)
    if shift is None:
        return None

    count, total = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
    ).filter(
        Sale.shift_id == shift.id,
        Sale.status == SALE_STATUS_COMPLETED,
    ).one()

    return {
        "shift": shift.to_dict(),
        "transaction_count": int(count),
        "total_sales_cents": int(total),
    }


def list_shift_history(
    *,
    actor_id: int | None = None,
    location_id: int | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> list[Shift]:
    q = db.session.query(Shift)
    if actor_id is not None:
        q = q.filter(Shift.actor_id == actor_id)
    if location_id is not None:
        q = q.filter(Shift.location_id == location_id)
    if status:
        q = q.filter(Shift.status == status)
    if start is not None:
        q = q.filter(Shift.start_time >= start)
    if end is not None:
        q = q.filter(Shift.start_time <= end)
    q = q.order_by(Shift.start_time.desc(), Shift.id.desc())
    return q.offset((max(page, 1) - 1) * limit).limit(limit).all()
