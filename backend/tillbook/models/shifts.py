from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SHIFT_STATUS_OPEN = "open"
SHIFT_STATUS_CLOSED = "closed"
SHIFT_STATUS_RECONCILED = "reconciled"


class Shift(db.Model):
    """
    Cash-drawer session for one actor at one terminal.

    LIFECYCLE (linear):
    - open: created by clock-in; at most one open shift per actor
    - closed: clock-out derived expected_cash_cents / cash_difference_cents
    - reconciled: bookkeeping confirmation, no recomputation

    Financial fields are frozen once closed; later corrections are appended
    to notes.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_actor_open",
            "actor_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.Index("ix_shifts_location_start", "location_id", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, nullable=False, index=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)
    terminal_id = db.Column(db.String(50), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=SHIFT_STATUS_OPEN, index=True)

    # Cash tracking (all amounts in cents)
    opening_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_cash_cents = db.Column(db.Integer, nullable=True)
    expected_cash_cents = db.Column(db.Integer, nullable=True)  # opening + cash payments
    cash_difference_cents = db.Column(db.Integer, nullable=True)  # closing - expected

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    reconciled_by = db.Column(db.Integer, nullable=True)
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Shift id={self.id} actor_id={self.actor_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "location_id": self.location_id,
            "terminal_id": self.terminal_id,
            "status": self.status,
            "opening_cash_cents": self.opening_cash_cents,
            "closing_cash_cents": self.closing_cash_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "cash_difference_cents": self.cash_difference_cents,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "reconciled_by": self.reconciled_by,
            "reconciled_at": to_utc_z(self.reconciled_at) if self.reconciled_at else None,
            "notes": self.notes,
        }
