from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_VOIDED = "voided"

DISCOUNT_TYPE_PERCENT = "PERCENT"
DISCOUNT_TYPE_FIXED = "FIXED"

METHOD_TYPE_CASH = "cash"


class PaymentMethod(db.Model):
    """
    Tender types accepted at the till.

    method_type drives shift accounting: only payments whose method has
    method_type == "cash" count toward a shift's expected drawer cash.
    """
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    method_type = db.Column(db.String(20), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    requires_reference = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "method_type": self.method_type,
            "is_active": self.is_active,
            "requires_reference": self.requires_reference,
            "sort_order": self.sort_order,
        }


class Sale(db.Model):
    """
    A completed sale, written once together with its items and payments.

    LIFECYCLE:
    - completed: created by sales_service.create_sale
    - voided: terminal, set exactly once by void_service.void_sale

    All money fields are integer cents.
    total_cents == subtotal_cents + tax_cents - discount_cents
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        db.UniqueConstraint("idempotency_key", name="uq_sales_idempotency_key"),
        db.Index("ix_sales_location_status_created", "location_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing number, e.g. "S-001-000042"
    sale_number = db.Column(db.String(64), nullable=False)

    location_id = db.Column(db.Integer, nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    actor_id = db.Column(db.Integer, nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(20), nullable=True)
    discount_reason = db.Column(db.String(200), nullable=True)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=SALE_STATUS_COMPLETED, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # Void audit trail
    voided_by = db.Column(db.Integer, nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(500), nullable=True)

    # Caller-supplied retry token and a fingerprint of the request it guarded
    idempotency_key = db.Column(db.String(128), nullable=True)
    request_fingerprint = db.Column(db.String(64), nullable=True)

    shift = db.relationship("Shift", backref=db.backref("sales", lazy=True))

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.sale_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "location_id": self.location_id,
            "shift_id": self.shift_id,
            "actor_id": self.actor_id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "discount_type": self.discount_type,
            "discount_reason": self.discount_reason,
            "total_cents": self.total_cents,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
        }


class SaleItem(db.Model):
    """Line item of a sale. Immutable once the sale is created."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    # unit_price_cents * quantity (gross, before line discount)
    line_total_cents = db.Column(db.Integer, nullable=False)

    inventory_transaction_id = db.Column(
        db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "line_total_cents": self.line_total_cents,
            "inventory_transaction_id": self.inventory_transaction_id,
        }


class SalePayment(db.Model):
    """
    Tender applied to a sale. Split tender is several rows.

    INVARIANT: sum(amount_cents) over a sale's payments == Sale.total_cents.
    """
    __tablename__ = "sale_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_sale_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)

    # Card auth code, check number, etc.
    reference_number = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="SalePayment.id"))
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method_id": self.payment_method_id,
            "method_name": self.payment_method.name if self.payment_method else None,
            "method_type": self.payment_method.method_type if self.payment_method else None,
            "amount_cents": self.amount_cents,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }
