# Overview: Service-layer operations for parked (suspended) carts.

from __future__ import annotations

import secrets

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ParkedCart
from .cart_calculator import calculate_cart, parse_cart
from .concurrency import begin_write, lock_for_update, run_with_retry


def _normalize_cart(cart: dict) -> dict:
    """Validate through the calculator's parser and store a canonical snapshot."""
    if not isinstance(cart, dict):
        raise ValidationError("cart must be an object")
    lines, discount = parse_cart(cart)
    if not lines:
        raise ValidationError("Cannot park an empty cart")
    calculate_cart(lines, discount=discount)

    snapshot = {
        "items": [
            {
                "variant_id": line.variant_id,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "discount_cents": line.discount_cents,
            }
            for line in lines
        ],
        "discount": None,
    }
    if discount is not None:
        # Decimal percent is kept as a string so the JSON column round-trips exactly
        snapshot["discount"] = {"type": discount.type, "value": str(discount.value)}
    return snapshot


def park_cart(
    *,
    location_id: int,
    actor_id: int,
    cart: dict,
    customer_id: int | None = None,
    notes: str | None = None,
) -> ParkedCart:
    if not location_id:
        raise ValidationError("location_id is required")
    snapshot = _normalize_cart(cart)
    limit = current_app.config.get("TILLBOOK_PARKED_CART_LIMIT", 50)

    def _op():
        begin_write()
        count = db.session.query(ParkedCart).filter_by(location_id=location_id).count()
        if count >= limit:
            raise ConflictError(
                "Too many parked carts at this location",
                details={"location_id": location_id, "limit": limit},
            )

        parked = ParkedCart(
            id=secrets.token_hex(16),
            location_id=location_id,
            actor_id=actor_id,
            customer_id=customer_id,
            cart=snapshot,
            notes=(notes or "").strip() or None,
        )
        db.session.add(parked)
        db.session.commit()
        current_app.logger.info("Cart %s parked at location %d", parked.id, location_id)
        return parked

    return run_with_retry(_op)


def list_parked_carts(location_id: int) -> list[ParkedCart]:
    return db.session.query(ParkedCart).filter_by(
        location_id=location_id
    ).order_by(ParkedCart.created_at.desc()).all()


def get_parked_cart(parked_id: str) -> ParkedCart:
    parked = db.session.get(ParkedCart, parked_id)
    if parked is None:
        raise NotFoundError("Parked cart not found", details={"parked_id": parked_id})
    return parked


def resume_parked_cart(parked_id: str) -> dict:
    """Return the snapshot and delete it in the same transaction; a cart resumes once."""

    def _op():
        begin_write()
        parked = lock_for_update(db.session.query(ParkedCart).filter_by(id=parked_id)).first()
        if parked is None:
            raise NotFoundError("Parked cart not found", details={"parked_id": parked_id})
        data = parked.to_dict()
        db.session.delete(parked)
        db.session.commit()
        return data

    return run_with_retry(_op)


def discard_parked_cart(parked_id: str) -> None:
    def _op():
        begin_write()
        parked = lock_for_update(db.session.query(ParkedCart).filter_by(id=parked_id)).first()
        if parked is None:
            raise NotFoundError("Parked cart not found", details={"parked_id": parked_id})
        db.session.delete(parked)
        db.session.commit()

    run_with_retry(_op)
