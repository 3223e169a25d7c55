# Overview: Flask API routes for cart pricing and parked carts.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_actor, require_permission
from ..errors import LedgerError
from ..permissions import CREATE_SALE
from ..services import parked_cart_service
from ..services.cart_calculator import calculate_cart, parse_cart
from ..validation import get_int, get_str


carts_bp = Blueprint("carts", __name__, url_prefix="/api/carts")


@carts_bp.post("/calculate")
@require_actor
def calculate_route():
    """
    Price a cart without persisting anything.

    Tax rate defaults to TILLBOOK_TAX_RATE_BPS; a request may pass tax_rate_bps.
    """
    try:
        data = request.get_json(silent=True) or {}
        lines, discount = parse_cart(data)
        tax_rate_bps = get_int(
            data,
            "tax_rate_bps",
            default=current_app.config.get("TILLBOOK_TAX_RATE_BPS", 0),
            minimum=0,
        )
        totals = calculate_cart(lines, tax_rate_bps=tax_rate_bps, discount=discount)
        return jsonify(totals.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@carts_bp.post("/parked")
@require_actor
@require_permission(CREATE_SALE)
def park_cart_route():
    try:
        data = request.get_json(silent=True) or {}
        parked = parked_cart_service.park_cart(
            location_id=get_int(data, "location_id", required=True, minimum=1),
            actor_id=current_actor().actor_id,
            cart=data.get("cart"),
            customer_id=get_int(data, "customer_id"),
            notes=get_str(data, "notes", max_length=500),
        )
        return jsonify({"parked_cart": parked.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to park cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.get("/parked")
@require_actor
@require_permission(CREATE_SALE)
def list_parked_route():
    try:
        location_id = get_int(request.args, "location_id", required=True)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    carts = parked_cart_service.list_parked_carts(location_id)
    return jsonify({"parked_carts": [c.to_dict() for c in carts]}), 200


@carts_bp.get("/parked/<parked_id>")
@require_actor
@require_permission(CREATE_SALE)
def get_parked_route(parked_id: str):
    try:
        parked = parked_cart_service.get_parked_cart(parked_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"parked_cart": parked.to_dict()}), 200


@carts_bp.post("/parked/<parked_id>/resume")
@require_actor
@require_permission(CREATE_SALE)
def resume_parked_route(parked_id: str):
    try:
        data = parked_cart_service.resume_parked_cart(parked_id)
        return jsonify({"parked_cart": data}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to resume parked cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.delete("/parked/<parked_id>")
@require_actor
@require_permission(CREATE_SALE)
def discard_parked_route(parked_id: str):
    try:
        parked_cart_service.discard_parked_cart(parked_id)
        return jsonify({"discarded": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to discard parked cart")
        return jsonify({"error": "Internal server error"}), 500
