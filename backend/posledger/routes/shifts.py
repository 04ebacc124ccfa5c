# Overview: Flask API routes for cashier shifts and cash reconciliation.

# backend/posledger/routes/shifts.py
"""
SECURITY: All routes require authentication.
- Start / end own shift requires OPERATE_SHIFT permission
- Ending someone else's shift additionally requires APPROVE_SHIFT
- Approving a variance requires APPROVE_SHIFT
- History and pending list require VIEW_SHIFTS
"""
from flask import Blueprint, current_app, g, request

from ..extensions import db
from ..permissions import has_permission
from ..services import shift_service
from posledger.time_utils import parse_iso_datetime
from ..validation import EngineError, ValidationError
from ..models import SHIFT_PENDING_APPROVAL
from ..decorators import require_auth, require_permission


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("/start")
@require_auth
@require_permission("OPERATE_SHIFT")
def start_shift_route():
    """Body: {"opening_balance_cents": int > 0}"""
    payload = request.get_json(silent=True) or {}
    user = g.current_user
    try:
        shift = shift_service.start_shift(
            db.session,
            user.id,
            payload.get("opening_balance_cents"),
            user_name=user.name,
        )
    except EngineError as e:
        return e.to_dict(), e.status_code

    current_app.logger.info("Shift %s started by user %s", shift.id, user.id)
    return {"shift": shift.to_dict()}, 201


@shifts_bp.post("/<int:shift_id>/end")
@require_auth
@require_permission("OPERATE_SHIFT")
def end_shift_route(shift_id: int):
    """Body: {"closing_balance_cents": int > 0, "notes"?}"""
    payload = request.get_json(silent=True) or {}
    user = g.current_user
    try:
        shift = shift_service.get_shift(db.session, shift_id)
        if shift.user_id != user.id and not has_permission(user, "APPROVE_SHIFT"):
            return {
                "error": "Only the shift owner can end this shift without manager approval",
                "required_permission": "APPROVE_SHIFT",
            }, 403

        shift = shift_service.end_shift(
            db.session,
            shift_id,
            payload.get("closing_balance_cents"),
            payload.get("notes"),
            variance_threshold_cents=current_app.config["SHIFT_VARIANCE_THRESHOLD_CENTS"],
            attempts=current_app.config["STOCK_RETRY_ATTEMPTS"],
        )
    except EngineError as e:
        return e.to_dict(), e.status_code

    if shift.status == SHIFT_PENDING_APPROVAL:
        current_app.logger.warning(
            "Shift %s closed with variance %s cents; pending approval",
            shift.id, shift.variance_cents,
        )
    else:
        current_app.logger.info("Shift %s completed (variance %s cents)", shift.id, shift.variance_cents)
    return {"shift": shift.to_dict()}


@shifts_bp.post("/<int:shift_id>/approve")
@require_auth
@require_permission("APPROVE_SHIFT")
def approve_shift_route(shift_id: int):
    user = g.current_user
    try:
        shift = shift_service.approve_shift(db.session, shift_id, user.id)
    except EngineError as e:
        return e.to_dict(), e.status_code

    current_app.logger.info("Shift %s approved by user %s", shift.id, user.id)
    return {"shift": shift.to_dict()}


@shifts_bp.get("/active")
@require_auth
@require_permission("OPERATE_SHIFT")
def active_shift_route():
    """Active shift for the caller, or for ?user_id= when the caller can view shifts."""
    user = g.current_user
    user_id = request.args.get("user_id", type=int) or user.id
    if user_id != user.id and not has_permission(user, "VIEW_SHIFTS"):
        return {"error": "Permission denied", "required_permission": "VIEW_SHIFTS"}, 403

    shift = shift_service.get_active_shift(db.session, user_id)
    return {"shift": shift.to_dict() if shift else None}


@shifts_bp.get("/pending")
@require_auth
@require_permission("VIEW_SHIFTS")
def pending_approvals_route():
    shifts = shift_service.pending_approvals(db.session)
    return {"items": [s.to_dict() for s in shifts], "count": len(shifts)}


@shifts_bp.get("")
@require_auth
@require_permission("VIEW_SHIFTS")
def shift_history_route():
    """Query params: start, end (ISO-8601, inclusive on start_time), user_id."""
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        e = ValidationError("start/end must be ISO-8601 datetimes")
        return e.to_dict(), e.status_code

    shifts = shift_service.shift_history(
        db.session, start, end, user_id=request.args.get("user_id", type=int)
    )
    return {"items": [s.to_dict() for s in shifts], "count": len(shifts)}


@shifts_bp.get("/<int:shift_id>")
@require_auth
@require_permission("OPERATE_SHIFT")
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(db.session, shift_id)
    except EngineError as e:
        return e.to_dict(), e.status_code
    if shift.user_id != g.current_user.id and not has_permission(g.current_user, "VIEW_SHIFTS"):
        return {"error": "Permission denied", "required_permission": "VIEW_SHIFTS"}, 403
    return {"shift": shift.to_dict()}
