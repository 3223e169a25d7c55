# backend/tillbook/routes/inventory.py
"""
Inventory ledger routes.

SECURITY: All routes require a resolved actor.
- View operations require VIEW_INVENTORY permission
- Receive operations require RECEIVE_INVENTORY permission
- Adjust and reorder settings require ADJUST_INVENTORY permission
  (OVERRIDE_NEGATIVE_STOCK additionally unlocks allow_negative)
- Transfers require TRANSFER_INVENTORY permission

Sale and void movements are not exposed here; they are written only by the
sale and void services.
"""
from flask import Blueprint, current_app, request

from ..decorators import current_actor, require_actor, require_permission
from ..errors import LedgerError, ValidationError
from ..permissions import (
    ADJUST_INVENTORY,
    OVERRIDE_NEGATIVE_STOCK,
    RECEIVE_INVENTORY,
    TRANSFER_INVENTORY,
    VIEW_INVENTORY,
)
from ..services import inventory_service
from ..validation import get_bool, get_int, get_pagination, get_str


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_actor
@require_permission(VIEW_INVENTORY)
def list_inventory_route():
    """Stock levels; ?location_id=&low_stock=true&page=&limit="""
    try:
        page, limit = get_pagination(request.args)
        records = inventory_service.list_inventory(
            location_id=get_int(request.args, "location_id"),
            low_stock=get_bool(request.args, "low_stock"),
            page=page,
            limit=limit,
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"inventory": [r.to_dict() for r in records], "page": page, "limit": limit}, 200


@inventory_bp.get("/transactions")
@require_actor
@require_permission(VIEW_INVENTORY)
def list_transactions_route():
    try:
        page, limit = get_pagination(request.args)
        txs = inventory_service.list_inventory_transactions(
            variant_id=get_int(request.args, "variant_id"),
            location_id=get_int(request.args, "location_id"),
            reference_type=request.args.get("reference_type") or None,
            reference_id=request.args.get("reference_id") or None,
            page=page,
            limit=limit,
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"transactions": [tx.to_dict() for tx in txs], "page": page, "limit": limit}, 200


@inventory_bp.get("/<int:variant_id>/<int:location_id>")
@require_actor
@require_permission(VIEW_INVENTORY)
def get_inventory_route(variant_id: int, location_id: int):
    try:
        record = inventory_service.get_inventory_record(variant_id, location_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"inventory": record.to_dict()}, 200


@inventory_bp.patch("/<int:variant_id>/<int:location_id>")
@require_actor
@require_permission(ADJUST_INVENTORY)
def update_inventory_settings_route(variant_id: int, location_id: int):
    """Reorder level / quantity / bin location. Never changes on-hand."""
    payload = request.get_json(silent=True) or {}
    try:
        record = inventory_service.set_reorder_level(
            variant_id=variant_id,
            location_id=location_id,
            reorder_level=get_int(payload, "reorder_level", minimum=0),
            reorder_quantity=get_int(payload, "reorder_quantity", minimum=0),
            bin_location=get_str(payload, "bin_location", max_length=50),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update inventory settings")
        return {"error": "Internal server error"}, 500
    return {"inventory": record.to_dict()}, 200


@inventory_bp.get("/<int:variant_id>/other-locations")
@require_actor
@require_permission(VIEW_INVENTORY)
def other_locations_route(variant_id: int):
    try:
        records = inventory_service.stock_at_other_locations(
            variant_id,
            exclude_location_id=get_int(request.args, "exclude_location_id"),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {
        "variant_id": variant_id,
        "locations": [
            {
                "location_id": r.location_id,
                "quantity_on_hand": r.quantity_on_hand,
                "bin_location": r.bin_location,
            }
            for r in records
        ],
    }, 200


@inventory_bp.post("/receive")
@require_actor
@require_permission(RECEIVE_INVENTORY)
def receive_inventory_route():
    """
    Receive inventory into stock.

    Requires RECEIVE_INVENTORY permission.
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = inventory_service.receive_inventory(
            variant_id=get_int(payload, "variant_id", required=True),
            location_id=get_int(payload, "location_id", required=True),
            quantity=get_int(payload, "quantity", required=True, minimum=1),
            actor_id=current_actor().actor_id,
            note=get_str(payload, "note", max_length=500),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive inventory")
        return {"error": "Internal server error"}, 500
    return result.to_dict(), 201


@inventory_bp.post("/adjust")
@require_actor
@require_permission(ADJUST_INVENTORY)
def adjust_inventory_route():
    """
    Adjust inventory (corrections, shrink, count variance).

    Requires ADJUST_INVENTORY permission. {"allow_negative": true} is only
    honored for actors holding OVERRIDE_NEGATIVE_STOCK.
    """
    payload = request.get_json(silent=True) or {}
    actor = current_actor()
    try:
        allow_negative = bool(payload.get("allow_negative"))
        if allow_negative and not actor.has(OVERRIDE_NEGATIVE_STOCK):
            return {
                "error": "Permission denied",
                "required_permission": OVERRIDE_NEGATIVE_STOCK,
            }, 403

        result = inventory_service.adjust_inventory(
            variant_id=get_int(payload, "variant_id", required=True),
            location_id=get_int(payload, "location_id", required=True),
            quantity_change=get_int(payload, "quantity_change", required=True),
            actor_id=actor.actor_id,
            reason=get_str(payload, "reason", required=True, max_length=500),
            allow_negative=allow_negative,
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return {"error": "Internal server error"}, 500
    return result.to_dict(), 201


@inventory_bp.post("/transfers")
@require_actor
@require_permission(TRANSFER_INVENTORY)
def transfer_inventory_route():
    payload = request.get_json(silent=True) or {}
    try:
        from_location_id = get_int(payload, "from_location_id", required=True)
        to_location_id = get_int(payload, "to_location_id", required=True)
        if from_location_id == to_location_id:
            raise ValidationError("from_location_id and to_location_id must differ")

        result = inventory_service.transfer_inventory(
            variant_id=get_int(payload, "variant_id", required=True),
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            quantity=get_int(payload, "quantity", required=True, minimum=1),
            actor_id=current_actor().actor_id,
            note=get_str(payload, "note", max_length=500),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to transfer inventory")
        return {"error": "Internal server error"}, 500
    return result.to_dict(), 201
