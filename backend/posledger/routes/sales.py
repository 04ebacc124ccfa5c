# Overview: Flask API routes for sale completion; parses input and returns JSON responses.

# backend/posledger/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..services import sales_service
from posledger.time_utils import parse_iso_datetime
from ..validation import EngineError, InsufficientStockError
from ..decorators import require_auth, require_permission
from flask import current_app


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def complete_sale_route():
    """
    Complete a sale: price, deduct stock, settle credit, in one transaction.

    Requires: CREATE_SALE permission
    Available to: admin, manager, cashier

    Body:
    {
        "lines": [{"product_id", "quantity", "unit_price_cents"?}],
        "payment_method": "cash" | "eft" | "split" | "credit",
        "cash_amount_cents"?, "eft_amount_cents"?,   (split only)
        "customer_id"?,
        "apply_bundles"?: bool (default true)
    }
    """
    data = request.get_json(silent=True) or {}
    user = g.current_user

    try:
        sale = sales_service.complete_sale(
            db.session,
            user_id=user.id,
            user_name=user.name,
            lines=data.get("lines"),
            payment_method=data.get("payment_method"),
            cash_amount_cents=data.get("cash_amount_cents"),
            eft_amount_cents=data.get("eft_amount_cents"),
            customer_id=data.get("customer_id"),
            apply_bundle_discount=bool(data.get("apply_bundles", True)),
            attempts=current_app.config["STOCK_RETRY_ATTEMPTS"],
        )
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 201

    except InsufficientStockError as e:
        current_app.logger.info("Sale refused for user %s: %s", user.id, e.message)
        return jsonify(e.to_dict()), e.status_code
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """Query params: start, end (ISO-8601, inclusive)."""
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes", "kind": "validation"}), 400

    sales = sales_service.list_sales(db.session, start, end)
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)})


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(db.session, sale_id)
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"sale": sale.to_dict(include_lines=True)})
