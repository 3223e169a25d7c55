from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


TX_SALE = "SALE"
TX_VOID_RESTORE = "VOID_RESTORE"
TX_ADJUSTMENT = "ADJUSTMENT"
TX_RECEIVE = "RECEIVE"
TX_TRANSFER_OUT = "TRANSFER_OUT"
TX_TRANSFER_IN = "TRANSFER_IN"

TRANSACTION_TYPES = (
    TX_SALE,
    TX_VOID_RESTORE,
    TX_ADJUSTMENT,
    TX_RECEIVE,
    TX_TRANSFER_OUT,
    TX_TRANSFER_IN,
)


class InventoryRecord(db.Model):
    """
    Stock on hand for one variant at one location.

    Created lazily on the first stock event for the pair. quantity_on_hand is
    written ONLY by inventory_service.mutate(), which appends the matching
    InventoryTransaction in the same DB transaction.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "location_id", name="uq_inventory_variant_location"),
        db.Index("ix_inventory_location_variant", "location_id", "variant_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Catalog-owned identifiers; no foreign keys into the catalog service
    variant_id = db.Column(db.Integer, nullable=False)
    location_id = db.Column(db.Integer, nullable=False, index=True)

    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)
    quantity_reserved = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=5)
    reorder_quantity = db.Column(db.Integer, nullable=False, default=10)
    bin_location = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord variant_id={self.variant_id} location_id={self.location_id} "
            f"on_hand={self.quantity_on_hand}>"
        )

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.quantity_on_hand <= self.reorder_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "quantity_on_hand": self.quantity_on_hand,
            "quantity_reserved": self.quantity_reserved,
            "reorder_level": self.reorder_level,
            "reorder_quantity": self.reorder_quantity,
            "bin_location": self.bin_location,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock movement log.

    INVARIANTS:
    - quantity_after == quantity_before + quantity_change
    - Folding quantity_change over a record's rows in (created_at, id) order
      from zero reproduces InventoryRecord.quantity_on_hand.
    - Rows are never updated or deleted.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_variant_location_created", "variant_id", "location_id", "created_at"),
        db.Index("ix_invtx_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    variant_id = db.Column(db.Integer, nullable=False)
    location_id = db.Column(db.Integer, nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    # What caused the movement: ("SALE", "<sale id>"), ("TRANSFER", "T-001-000004"), ...
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    note = db.Column(db.String(500), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "type": self.type,
            "quantity_change": self.quantity_change,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }
