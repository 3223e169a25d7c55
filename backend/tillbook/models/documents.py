from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class DocumentSequence(db.Model):
    """
    Atomic per-location document sequences (sale numbers, transfer numbers).

    The counter row is updated inside the caller's transaction, so a number
    is consumed only if the document that uses it commits.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("location_id", "document_type", name="uq_doc_sequences_location_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class ParkedCart(db.Model):
    """
    Serialized snapshot of an in-progress cart, held until resumed or
    discarded. Not part of the ledger: parking never touches stock.
    """
    __tablename__ = "parked_carts"
    __table_args__ = (
        db.Index("ix_parked_carts_location_created", "location_id", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True)
    location_id = db.Column(db.Integer, nullable=False)
    actor_id = db.Column(db.Integer, nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=True)

    cart = db.Column(db.JSON, nullable=False)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "actor_id": self.actor_id,
            "customer_id": self.customer_id,
            "cart": self.cart,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
