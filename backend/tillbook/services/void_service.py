# Overview: Service-layer reversal of completed sales.

"""
Void / Reversal

A void is the exact inverse of a sale's stock effect: every SaleItem gets a
VOID_RESTORE movement of +quantity referencing the sale, and the sale flips
completed -> voided. Both happen in one unit of work; a restored item on a
sale that still reads "completed" is never observable.

completed -> voided is terminal. The sale row is locked before its status is
read, so two concurrent voids serialize and the loser gets AlreadyVoidedError.
"""

from __future__ import annotations

from flask import current_app

from ..errors import AlreadyVoidedError, ConflictError, NotFoundError, ValidationError
from ..events import queue_event, sale_voided
from ..extensions import db
from ..models import Sale, SaleItem, Shift
from ..models.inventory import TX_VOID_RESTORE
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_VOIDED
from ..models.shifts import SHIFT_STATUS_OPEN
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .inventory_service import mutate


def void_sale(sale_id: int, actor_id: int, reason: str) -> Sale:
    """
    Void a completed sale and restore its stock.

    Raises:
        NotFoundError: unknown sale
        AlreadyVoidedError: sale was voided before
        ConflictError: the sale's shift is no longer open
        ValidationError: missing reason
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A void reason is required")
    if not actor_id:
        raise ValidationError("actor_id is required")

    def _op():
        begin_write()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        if sale.status == SALE_STATUS_VOIDED:
            raise AlreadyVoidedError(
                "Sale already voided",
                details={"sale_id": sale.id, "voided_at": sale.voided_at.isoformat() if sale.voided_at else None},
            )
        if sale.status != SALE_STATUS_COMPLETED:
            raise ConflictError(
                "Only completed sales can be voided",
                details={"sale_id": sale.id, "status": sale.status},
            )

        if sale.shift_id is not None:
            shift = lock_for_update(db.session.query(Shift).filter_by(id=sale.shift_id)).first()
            if shift is not None and shift.status != SHIFT_STATUS_OPEN:
                raise ConflictError(
                    "Cannot void a sale from a closed shift",
                    details={"sale_id": sale.id, "shift_id": shift.id, "shift_status": shift.status},
                )

        items = db.session.query(SaleItem).filter_by(sale_id=sale.id).all()
        for item in sorted(items, key=lambda i: (i.variant_id, i.id)):
            mutate(
                variant_id=item.variant_id,
                location_id=sale.location_id,
                quantity_change=item.quantity,
                type=TX_VOID_RESTORE,
                reference_type="SALE",
                reference_id=sale.id,
                actor_id=actor_id,
                note=f"Void sale {sale.sale_number}",
            )

        sale.status = SALE_STATUS_VOIDED
        sale.voided_by = actor_id
        sale.voided_at = utcnow()
        sale.void_reason = reason

        queue_event(
            db.session,
            sale_voided,
            sale.location_id,
            sale_id=sale.id,
            sale_number=sale.sale_number,
            total_cents=sale.total_cents,
            voided_by=actor_id,
        )

        db.session.commit()
        current_app.logger.info(
            "Sale %s voided by actor %d (%d line(s) restored)",
            sale.sale_number, actor_id, len(items),
        )
        return sale

    return run_with_retry(_op)
