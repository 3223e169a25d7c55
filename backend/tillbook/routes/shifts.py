# Overview: Flask API routes for cash-drawer shifts; parses input and returns JSON responses.

# backend/tillbook/routes/shifts.py
"""
Shift API routes.

Clock-in/out is self-service (OPERATE_SHIFT). Closing another actor's
shift, reconciling, and browsing other actors' history need MANAGE_SHIFTS.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_actor, require_permission
from ..errors import LedgerError
from ..permissions import MANAGE_SHIFTS, OPERATE_SHIFT
from ..services import shift_service
from ..validation import get_datetime, get_int, get_pagination, get_str


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.get("/current")
@require_actor
def current_shift_route():
    """The caller's open shift with running totals, or {"shift": null}."""
    summary = shift_service.get_current_shift_summary(current_actor().actor_id)
    if summary is None:
        return jsonify({"shift": None}), 200
    return jsonify(summary), 200


@shifts_bp.post("/clock-in")
@require_actor
@require_permission(OPERATE_SHIFT)
def clock_in_route():
    try:
        data = request.get_json(silent=True) or {}
        shift = shift_service.clock_in(
            actor_id=current_actor().actor_id,
            location_id=get_int(data, "location_id", required=True, minimum=1),
            terminal_id=get_str(data, "terminal_id", max_length=50),
            opening_cash_cents=get_int(data, "opening_cash_cents", default=0, minimum=0),
            notes=get_str(data, "notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clock in")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/clock-out")
@require_actor
@require_permission(OPERATE_SHIFT)
def clock_out_route(shift_id: int):
    """
    Close a shift and compute its cash difference.

    The owner may always close it; other actors need MANAGE_SHIFTS.
    """
    try:
        data = request.get_json(silent=True) or {}
        actor = current_actor()
        shift = shift_service.clock_out(
            shift_id=shift_id,
            closing_cash_cents=get_int(data, "closing_cash_cents", required=True, minimum=0),
            notes=get_str(data, "notes"),
            actor_id=actor.actor_id,
            manager_override=actor.has(MANAGE_SHIFTS),
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clock out")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/reconcile")
@require_actor
@require_permission(MANAGE_SHIFTS)
def reconcile_route(shift_id: int):
    try:
        data = request.get_json(silent=True) or {}
        shift = shift_service.reconcile(
            shift_id=shift_id,
            actor_id=current_actor().actor_id,
            notes=get_str(data, "notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/history")
@require_actor
@require_permission(OPERATE_SHIFT)
def shift_history_route():
    """
    Shift history. Without MANAGE_SHIFTS the caller only sees their own shifts.
    """
    try:
        actor = current_actor()
        page, limit = get_pagination(request.args)
        actor_filter = get_int(request.args, "actor_id")
        if not actor.has(MANAGE_SHIFTS):
            actor_filter = actor.actor_id

        shifts = shift_service.list_shift_history(
            actor_id=actor_filter,
            location_id=get_int(request.args, "location_id"),
            status=request.args.get("status") or None,
            start=get_datetime(request.args, "from"),
            end=get_datetime(request.args, "to"),
            page=page,
            limit=limit,
        )
        return jsonify({"shifts": [s.to_dict() for s in shifts], "page": page, "limit": limit}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.get("/<int:shift_id>")
@require_actor
@require_permission(OPERATE_SHIFT)
def shift_summary_route(shift_id: int):
    try:
        actor = current_actor()
        shift = shift_service.get_shift(shift_id)
        if shift.actor_id != actor.actor_id and not actor.has(MANAGE_SHIFTS):
            return jsonify({
                "error": "Permission denied",
                "required_permission": MANAGE_SHIFTS,
            }), 403
        return jsonify(shift_service.get_shift_summary(shift_id)), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
