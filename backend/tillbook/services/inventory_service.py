# Overview: Service-layer operations for the inventory ledger; owns every stock quantity change.

# backend/tillbook/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..events import inventory_updated, queue_event
from ..extensions import db
from ..models import InventoryRecord, InventoryTransaction
from ..models.inventory import (
    TRANSACTION_TYPES,
    TX_ADJUSTMENT,
    TX_RECEIVE,
    TX_SALE,
    TX_TRANSFER_IN,
    TX_TRANSFER_OUT,
    TX_VOID_RESTORE,
)
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_document_number
"""
Inventory Ledger Invariants (authoritative)

Stock model:
- InventoryRecord.quantity_on_hand is the current count per (variant, location).
- It is changed ONLY by mutate(); every change appends one InventoryTransaction
  carrying quantity_before / quantity_change / quantity_after.
- Replaying a record's transactions in (created_at, id) order from zero
  reproduces quantity_on_hand exactly (see replay_quantity / verify_ledger).

Negative stock:
- SALE and TRANSFER_OUT may never drive on-hand below zero (InsufficientStockError).
- ADJUSTMENT may only go negative when the caller passes allow_negative=True
  (caller has already checked the OVERRIDE_NEGATIVE_STOCK permission).
- RECEIVE, VOID_RESTORE and TRANSFER_IN only ever increase stock.

Transactions:
- mutate() never commits; it joins the caller's unit of work.
- The public receive/adjust/transfer functions are complete units of work.
- inventory-updated events are queued per mutation and published after commit.
"""


# Sign each movement type must carry
_INCREASING_TYPES = {TX_RECEIVE, TX_VOID_RESTORE, TX_TRANSFER_IN}
_DECREASING_TYPES = {TX_SALE, TX_TRANSFER_OUT}
_NEVER_NEGATIVE_TYPES = {TX_SALE, TX_TRANSFER_OUT}


@dataclass(frozen=True)
class StockMutation:
    previous_stock: int
    new_stock: int
    transaction: InventoryTransaction

    def to_dict(self) -> dict:
        return {
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "transaction": self.transaction.to_dict(),
        }


@dataclass(frozen=True)
class TransferResult:
    reference: str
    outbound: StockMutation
    inbound: StockMutation

    def to_dict(self) -> dict:
        return {
            "reference": self.reference,
            "outbound": self.outbound.to_dict(),
            "inbound": self.inbound.to_dict(),
        }


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={name: value})
    return value


def _lock_record(variant_id: int, location_id: int) -> InventoryRecord | None:
    return lock_for_update(
        db.session.query(InventoryRecord).filter_by(
            variant_id=variant_id,
            location_id=location_id,
        )
    ).first()


def _create_record(variant_id: int, location_id: int) -> InventoryRecord:
    """First-touch creation of a zero-valued record."""
    record = InventoryRecord(
        variant_id=variant_id,
        location_id=location_id,
        quantity_on_hand=0,
        quantity_reserved=0,
        reorder_level=current_app.config.get("TILLBOOK_DEFAULT_REORDER_LEVEL", 5),
        reorder_quantity=current_app.config.get("TILLBOOK_DEFAULT_REORDER_QUANTITY", 10),
    )
    db.session.add(record)
    db.session.flush()
    return record


def mutate(
    *,
    variant_id: int,
    location_id: int,
    quantity_change: int,
    type: str,
    reference_type: str | None = None,
    reference_id: str | int | None = None,
    actor_id: int | None = None,
    note: str | None = None,
    allow_negative: bool = False,
) -> StockMutation:
    """
    Apply one stock movement and append its log row.

    Joins the caller's transaction (no commit). On InsufficientStockError
    nothing has been written by this call; the caller's unit of work is
    expected to roll back as a whole.
    """
    _require_int("variant_id", variant_id)
    _require_int("location_id", location_id)
    _require_int("quantity_change", quantity_change)

    if type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown inventory transaction type {type!r}")
    if quantity_change == 0:
        raise ValidationError("quantity_change must be non-zero")
    if type in _INCREASING_TYPES and quantity_change < 0:
        raise ValidationError(f"{type} must increase stock")
    if type in _DECREASING_TYPES and quantity_change > 0:
        raise ValidationError(f"{type} must decrease stock")

    record = _lock_record(variant_id, location_id)
    previous_stock = record.quantity_on_hand if record else 0
    new_stock = previous_stock + quantity_change

    # Increases are never blocked, even when they leave stock below zero
    if quantity_change < 0 and new_stock < 0 and (type in _NEVER_NEGATIVE_TYPES or not allow_negative):
        raise InsufficientStockError(
            f"Insufficient stock for variant {variant_id} at location {location_id}",
            details={
                "variant_id": variant_id,
                "location_id": location_id,
                "requested_quantity": -quantity_change,
                "on_hand": previous_stock,
            },
        )

    if record is None:
        record = _create_record(variant_id, location_id)

    record.quantity_on_hand = new_stock

    tx = InventoryTransaction(
        variant_id=variant_id,
        location_id=location_id,
        type=type,
        quantity_change=quantity_change,
        quantity_before=previous_stock,
        quantity_after=new_stock,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        note=note,
        actor_id=actor_id,
    )
    db.session.add(tx)
    db.session.flush()

    queue_event(
        db.session,
        inventory_updated,
        location_id,
        variant_id=variant_id,
        type=type,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )

    return StockMutation(previous_stock=previous_stock, new_stock=new_stock, transaction=tx)


# =============================================================================
# UNITS OF WORK
# =============================================================================

def receive_inventory(
    *,
    variant_id: int,
    location_id: int,
    quantity: int,
    actor_id: int | None = None,
    note: str | None = None,
) -> StockMutation:
    """Book received stock (RECEIVE)."""
    _require_int("quantity", quantity)
    if quantity <= 0:
        raise ValidationError("quantity must be positive")

    def _op():
        begin_write()
        result = mutate(
            variant_id=variant_id,
            location_id=location_id,
            quantity_change=quantity,
            type=TX_RECEIVE,
            reference_type="RECEIVE",
            actor_id=actor_id,
            note=note or "Stock received",
        )
        db.session.commit()
        return result

    return run_with_retry(_op)


def adjust_inventory(
    *,
    variant_id: int,
    location_id: int,
    quantity_change: int,
    actor_id: int | None = None,
    reason: str | None = None,
    allow_negative: bool = False,
) -> StockMutation:
    """
    Manual correction (shrink, damage, count variance).

    allow_negative=True lets the adjustment take on-hand below zero; the
    caller is responsible for having authorized that.
    """
    def _op():
        begin_write()
        result = mutate(
            variant_id=variant_id,
            location_id=location_id,
            quantity_change=quantity_change,
            type=TX_ADJUSTMENT,
            reference_type="ADJUSTMENT",
            actor_id=actor_id,
            note=reason or "Stock adjustment",
            allow_negative=allow_negative,
        )
        db.session.commit()
        return result

    return run_with_retry(_op)


def transfer_inventory(
    *,
    variant_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    actor_id: int | None = None,
    note: str | None = None,
) -> TransferResult:
    """
    Move stock between locations as one unit of work.

    Both records are locked lower location_id first. If the outbound leg
    would go negative, neither leg is applied.
    """
    _require_int("from_location_id", from_location_id)
    _require_int("to_location_id", to_location_id)
    _require_int("quantity", quantity)
    if quantity <= 0:
        raise ValidationError("quantity must be positive")
    if from_location_id == to_location_id:
        raise ValidationError("Cannot transfer to the same location")

    def _op():
        begin_write()
        for location_id in sorted((from_location_id, to_location_id)):
            _lock_record(variant_id, location_id)

        reference = next_document_number(
            location_id=from_location_id,
            document_type="TRANSFER",
            prefix=current_app.config.get("TILLBOOK_TRANSFER_PREFIX", "T"),
        )

        outbound = mutate(
            variant_id=variant_id,
            location_id=from_location_id,
            quantity_change=-quantity,
            type=TX_TRANSFER_OUT,
            reference_type="TRANSFER",
            reference_id=reference,
            actor_id=actor_id,
            note=note or f"Transfer to location {to_location_id}",
        )
        inbound = mutate(
            variant_id=variant_id,
            location_id=to_location_id,
            quantity_change=quantity,
            type=TX_TRANSFER_IN,
            reference_type="TRANSFER",
            reference_id=reference,
            actor_id=actor_id,
            note=note or f"Transfer from location {from_location_id}",
        )

        db.session.commit()
        current_app.logger.info(
            "Transfer %s: %d x variant %d from location %d to %d",
            reference, quantity, variant_id, from_location_id, to_location_id,
        )
        return TransferResult(reference=reference, outbound=outbound, inbound=inbound)

    return run_with_retry(_op)


def set_reorder_level(
    *,
    variant_id: int,
    location_id: int,
    reorder_level: int | None = None,
    reorder_quantity: int | None = None,
    bin_location: str | None = None,
) -> InventoryRecord:
    """Update replenishment settings. Never touches quantity_on_hand."""
    for name, value in (("reorder_level", reorder_level), ("reorder_quantity", reorder_quantity)):
        if value is not None and (_require_int(name, value) < 0):
            raise ValidationError(f"{name} cannot be negative")

    def _op():
        begin_write()
        record = _lock_record(variant_id, location_id)
        if record is None:
            record = _create_record(variant_id, location_id)
        if reorder_level is not None:
            record.reorder_level = reorder_level
        if reorder_quantity is not None:
            record.reorder_quantity = reorder_quantity
        if bin_location is not None:
            record.bin_location = bin_location or None
        db.session.commit()
        return record

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_inventory_record(variant_id: int, location_id: int) -> InventoryRecord:
    record = db.session.query(InventoryRecord).filter_by(
        variant_id=variant_id,
        location_id=location_id,
    ).first()
    if record is None:
        raise NotFoundError(
            "No inventory record for variant at location",
            details={"variant_id": variant_id, "location_id": location_id},
        )
    return record


def get_quantity_on_hand(variant_id: int, location_id: int) -> int:
    """Current on-hand; 0 for a pair that has never seen a stock event."""
    qty = db.session.query(InventoryRecord.quantity_on_hand).filter_by(
        variant_id=variant_id,
        location_id=location_id,
    ).scalar()
    return int(qty or 0)


def list_inventory(
    *,
    location_id: int | None = None,
    low_stock: bool = False,
    page: int = 1,
    limit: int = 50,
) -> list[InventoryRecord]:
    q = db.session.query(InventoryRecord)
    if location_id is not None:
        q = q.filter(InventoryRecord.location_id == location_id)
    if low_stock:
        q = q.filter(
            InventoryRecord.quantity_on_hand > 0,
            InventoryRecord.quantity_on_hand <= InventoryRecord.reorder_level,
        )
    q = q.order_by(InventoryRecord.location_id, InventoryRecord.variant_id)
    return q.offset((max(page, 1) - 1) * limit).limit(limit).all()


def stock_at_other_locations(variant_id: int, exclude_location_id: int | None = None) -> list[InventoryRecord]:
    """Locations holding positive stock of a variant, largest first."""
    q = db.session.query(InventoryRecord).filter(
        InventoryRecord.variant_id == variant_id,
        InventoryRecord.quantity_on_hand > 0,
    )
    if exclude_location_id is not None:
        q = q.filter(InventoryRecord.location_id != exclude_location_id)
    return q.order_by(InventoryRecord.quantity_on_hand.desc(), InventoryRecord.location_id).all()


def list_inventory_transactions(
    *,
    variant_id: int | None = None,
    location_id: int | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> list[InventoryTransaction]:
    q = db.session.query(InventoryTransaction)
    if variant_id is not None:
        q = q.filter(InventoryTransaction.variant_id == variant_id)
    if location_id is not None:
        q = q.filter(InventoryTransaction.location_id == location_id)
    if reference_type is not None:
        q = q.filter(InventoryTransaction.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(InventoryTransaction.reference_id == str(reference_id))
    q = q.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
    return q.offset((max(page, 1) - 1) * limit).limit(limit).all()


# =============================================================================
# AUDIT
# =============================================================================

def _ordered_transactions(variant_id: int, location_id: int) -> list[InventoryTransaction]:
    return db.session.query(InventoryTransaction).filter_by(
        variant_id=variant_id,
        location_id=location_id,
    ).order_by(
        InventoryTransaction.created_at,
        InventoryTransaction.id,
    ).all()


def replay_quantity(variant_id: int, location_id: int) -> int:
    """Fold the movement log from zero."""
    return sum(tx.quantity_change for tx in _ordered_transactions(variant_id, location_id))


def verify_ledger(location_id: int | None = None) -> list[dict]:
    """
    Check every record against its log.

    Returns one entry per inconsistent record (empty list when the ledger is
    sound). Two checks are made: the folded quantity equals on-hand, and each
    row's quantity_before equals the previous row's quantity_after.
    """
    q = db.session.query(InventoryRecord)
    if location_id is not None:
        q = q.filter(InventoryRecord.location_id == location_id)

    problems = []
    for record in q.order_by(InventoryRecord.location_id, InventoryRecord.variant_id).all():
        running = 0
        broken_chain_at = None
        for tx in _ordered_transactions(record.variant_id, record.location_id):
            if tx.quantity_before != running and broken_chain_at is None:
                broken_chain_at = tx.id
            running += tx.quantity_change

        if running != record.quantity_on_hand or broken_chain_at is not None:
            problems.append({
                "variant_id": record.variant_id,
                "location_id": record.location_id,
                "quantity_on_hand": record.quantity_on_hand,
                "replayed_quantity": running,
                "broken_chain_at_transaction_id": broken_chain_at,
            })
    return problems
