# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/tillbook/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_actor, require_permission
from ..errors import LedgerError, ValidationError
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_VOIDED
from ..permissions import CREATE_SALE, OVERRIDE_PRICE, VIEW_SALES, VOID_SALE
from ..services import payment_service, sales_service, shift_service, void_service
from ..validation import get_datetime, get_int, get_pagination, get_str


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _resolve_shift_id(data: dict, actor_id: int, location_id: int) -> int | None:
    """
    Explicit shift_id wins. Otherwise attach the actor's open shift when it
    is at the selling location.
    """
    shift_id = get_int(data, "shift_id")
    if shift_id is not None:
        return shift_id
    active = shift_service.get_active_shift(actor_id)
    if active is not None and active.location_id == location_id:
        return active.id
    return None


@sales_bp.post("")
@require_actor
@require_permission(CREATE_SALE)
def create_sale_route():
    """
    Create a completed sale from a submitted cart and its payments.

    Requires: CREATE_SALE permission
    Optional header: Idempotency-Key
    """
    try:
        data = request.get_json(silent=True) or {}
        actor = current_actor()

        location_id = get_int(data, "location_id", required=True, minimum=1)
        discount_type = get_str(data, "discount_type", max_length=20)

        result = sales_service.create_sale(
            location_id=location_id,
            actor_id=actor.actor_id,
            items=sales_service.parse_sale_items(data.get("items")),
            payments=sales_service.parse_payments(data.get("payments")),
            discount_cents=get_int(data, "discount_cents", default=0),
            discount_type=discount_type.upper() if discount_type else None,
            discount_reason=get_str(data, "discount_reason", max_length=200),
            customer_id=get_int(data, "customer_id"),
            shift_id=_resolve_shift_id(data, actor.actor_id, location_id),
            notes=get_str(data, "notes"),
            idempotency_key=get_str(request.headers, "Idempotency-Key", max_length=128),
            allow_price_override=actor.has(OVERRIDE_PRICE),
        )

        body = sales_service.sale_detail(result.sale)
        body["replayed"] = result.replayed
        return jsonify(body), 200 if result.replayed else 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_actor
@require_permission(VIEW_SALES)
def list_sales_route():
    try:
        status = request.args.get("status")
        if status and status not in (SALE_STATUS_COMPLETED, SALE_STATUS_VOIDED):
            raise ValidationError("status must be completed or voided")
        page, limit = get_pagination(request.args)

        sales = sales_service.list_sales(
            location_id=get_int(request.args, "location_id"),
            status=status,
            shift_id=get_int(request.args, "shift_id"),
            start=get_datetime(request.args, "from"),
            end=get_datetime(request.args, "to"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "sales": [sale.to_dict() for sale in sales],
            "page": page,
            "limit": limit,
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_actor
@require_permission(VIEW_SALES)
def get_sale_route(sale_id: int):
    """Sale with its items and payments."""
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify(sales_service.sale_detail(sale)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fetch sale %d", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/void")
@require_actor
@require_permission(VOID_SALE)
def void_sale_route(sale_id: int):
    """
    Void a completed sale and restore its stock.

    Requires: VOID_SALE permission
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = void_service.void_sale(
            sale_id=sale_id,
            actor_id=current_actor().actor_id,
            reason=get_str(data, "reason", required=True, max_length=500),
        )
        return jsonify({"success": True, "sale": sale.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/payment-methods")
@require_actor
def list_payment_methods_route():
    methods = payment_service.list_payment_methods()
    return jsonify({"payment_methods": [m.to_dict() for m in methods]}), 200
