# backend/posledger/routes/inventory.py
"""
Inventory routes: availability, deduction, adjustments, movements, reports.

SECURITY: All routes require authentication.
- View operations require VIEW_INVENTORY permission
- Deductions require CREATE_SALE permission
- Adjustments require ADJUST_INVENTORY permission

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start/end filtering is inclusive.
"""
from flask import Blueprint, current_app, g, request

from ..extensions import db
from posledger.time_utils import parse_iso_datetime
from ..services.inventory_service import adjust_stock, low_stock_report, stock_value_report
from ..services.ledger_service import list_adjustments, list_movements, list_product_movements
from ..services.stock_family_service import available_stock, deduct_stock
from ..validation import EngineError, InsufficientStockError, ValidationError, coerce_int
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _window_args():
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")
    return start, end


@inventory_bp.get("/products/<int:product_id>/available")
@require_auth
@require_permission("VIEW_INVENTORY")
def available_stock_route(product_id: int):
    """Sellable quantity (family-aware)."""
    try:
        available = available_stock(db.session, product_id)
    except EngineError as e:
        return e.to_dict(), e.status_code
    return {"product_id": product_id, "available_stock": available}


@inventory_bp.post("/products/<int:product_id>/deduct")
@require_auth
@require_permission("CREATE_SALE")
def deduct_stock_route(product_id: int):
    """
    Body: {"quantity": int, "reference_id": optional, "reason": optional}
    """
    payload = request.get_json(silent=True) or {}
    user = g.current_user

    try:
        movement = deduct_stock(
            db.session,
            product_id,
            payload.get("quantity"),
            user_id=user.id,
            user_name=user.name,
            reference_id=payload.get("reference_id"),
            reason=payload.get("reason"),
            attempts=current_app.config["STOCK_RETRY_ATTEMPTS"],
        )
    except InsufficientStockError as e:
        current_app.logger.info("Deduction refused for product %s: %s", product_id, e.message)
        return e.to_dict(), e.status_code
    except EngineError as e:
        return e.to_dict(), e.status_code

    return {
        "movement": movement.to_dict(),
        "available_stock": available_stock(db.session, product_id),
    }, 201


@inventory_bp.post("/adjustments")
@require_auth
@require_permission("ADJUST_INVENTORY")
def adjust_stock_route():
    """
    Body: {"product_id", "adjustment_type": increase|decrease|set, "quantity", "reason"}

    Decrease below zero clamps at zero.
    """
    payload = request.get_json(silent=True) or {}
    user = g.current_user

    try:
        if "product_id" not in payload:
            raise ValidationError("product_id is required")
        product_id = coerce_int(payload["product_id"], "product_id")
        adjustment = adjust_stock(
            db.session,
            product_id,
            payload.get("adjustment_type"),
            payload.get("quantity"),
            payload.get("reason"),
            user.id,
            user_name=user.name,
            attempts=current_app.config["STOCK_RETRY_ATTEMPTS"],
        )
    except EngineError as e:
        return e.to_dict(), e.status_code

    return {
        "adjustment": adjustment.to_dict(),
        "available_stock": available_stock(db.session, product_id),
    }, 201


@inventory_bp.get("/adjustments")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_adjustments_route():
    try:
        start, end = _window_args()
    except EngineError as e:
        return e.to_dict(), e.status_code
    adjustments = list_adjustments(db.session, start=start, end=end)
    return {"items": [a.to_dict() for a in adjustments], "count": len(adjustments)}


@inventory_bp.get("/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route():
    """
    Query params:
    - product_id: int (optional) - one product's history
    - start / end: ISO-8601 (optional, inclusive)
    - limit: int (optional, product history only)
    """
    product_id = request.args.get("product_id", type=int)
    limit = request.args.get("limit", type=int)

    try:
        start, end = _window_args()
    except EngineError as e:
        return e.to_dict(), e.status_code

    if product_id is not None:
        movements = list_product_movements(db.session, product_id, start=start, end=end, limit=limit)
    else:
        movements = list_movements(db.session, start=start, end=end)
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.get("/reports/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    threshold = request.args.get("threshold", type=int)
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    rows = low_stock_report(db.session, threshold)
    return {"threshold": threshold, "items": rows, "count": len(rows)}


@inventory_bp.get("/reports/stock-value")
@require_auth
@require_permission("VIEW_INVENTORY")
def stock_value_route():
    return stock_value_report(db.session)
