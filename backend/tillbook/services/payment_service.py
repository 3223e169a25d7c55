# Overview: Service-layer operations for payment methods (tender types).

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PaymentMethod
from ..models.sales import METHOD_TYPE_CASH
from .concurrency import run_with_retry


METHOD_TYPE_CARD = "card"
METHOD_TYPE_OTHER = "other"

METHOD_TYPES = (METHOD_TYPE_CASH, METHOD_TYPE_CARD, METHOD_TYPE_OTHER)

DEFAULT_PAYMENT_METHODS = (
    {"name": "Cash", "method_type": METHOD_TYPE_CASH, "requires_reference": False, "sort_order": 1},
    {"name": "Card", "method_type": METHOD_TYPE_CARD, "requires_reference": False, "sort_order": 2},
)


def list_payment_methods(include_inactive: bool = False) -> list[PaymentMethod]:
    q = db.session.query(PaymentMethod)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(PaymentMethod.sort_order, PaymentMethod.id).all()


def get_payment_method(payment_method_id: int) -> PaymentMethod:
    method = db.session.get(PaymentMethod, payment_method_id)
    if method is None:
        raise NotFoundError(
            "Payment method not found",
            details={"payment_method_id": payment_method_id},
        )
    return method


def create_payment_method(
    *,
    name: str,
    method_type: str,
    requires_reference: bool = False,
    sort_order: int = 0,
) -> PaymentMethod:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if method_type not in METHOD_TYPES:
        raise ValidationError(
            "Unknown method_type",
            details={"method_type": method_type, "allowed": list(METHOD_TYPES)},
        )

    def _op():
        if db.session.query(PaymentMethod).filter_by(name=name).first():
            raise ConflictError(f"Payment method '{name}' already exists")
        method = PaymentMethod(
            name=name,
            method_type=method_type,
            requires_reference=requires_reference,
            sort_order=sort_order,
            is_active=True,
        )
        db.session.add(method)
        db.session.commit()
        return method

    return run_with_retry(_op)


def seed_default_payment_methods() -> list[PaymentMethod]:
    """Create Cash and Card if missing. Safe to call repeatedly."""
    created = []
    for defaults in DEFAULT_PAYMENT_METHODS:
        if db.session.query(PaymentMethod).filter_by(name=defaults["name"]).first():
            continue
        created.append(create_payment_method(**defaults))
    return created
