# Overview: Flask API routes for customers and their store-credit ledger.

# backend/posledger/routes/customers.py
"""
SECURITY: All routes require authentication.
- Read operations require VIEW_CUSTOMERS permission
- Create / credit adjustments require MANAGE_CUSTOMERS permission

Credit balances may go negative (customer owes the store).
"""
from flask import Blueprint, current_app, g, request

from ..extensions import db
from ..services import customer_service
from ..validation import EngineError
from ..decorators import require_auth, require_permission


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def search_customers_route():
    """Query params: q (name/email/phone fragment), limit (default 50)."""
    limit = request.args.get("limit", default=50, type=int)
    customers = customer_service.search_customers(db.session, request.args.get("q", ""), limit=limit)
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(db.session, payload)
    except EngineError as e:
        return e.to_dict(), e.status_code
    return {"customer": customer.to_dict()}, 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(db.session, customer_id)
    except EngineError as e:
        return e.to_dict(), e.status_code
    return {"customer": customer.to_dict()}


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.update_customer(db.session, customer_id, payload)
    except EngineError as e:
        return e.to_dict(), e.status_code
    return {"customer": customer.to_dict()}


@customers_bp.post("/<int:customer_id>/credit")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def adjust_credit_route(customer_id: int):
    """
    Body: {"amount_cents": int (non-zero, negative deducts), "description": str, "sale_id"?}
    """
    payload = request.get_json(silent=True) or {}
    try:
        txn = customer_service.adjust_balance(
            db.session,
            customer_id,
            payload.get("amount_cents"),
            payload.get("description"),
            sale_id=payload.get("sale_id"),
            attempts=current_app.config["STOCK_RETRY_ATTEMPTS"],
        )
    except EngineError as e:
        return e.to_dict(), e.status_code

    current_app.logger.info(
        "Customer %s credit %s %s cents by user %s",
        customer_id, txn.type, txn.amount_cents, g.current_user.id,
    )
    return {
        "transaction": txn.to_dict(),
        "credit_balance_cents": txn.customer.credit_balance_cents,
    }, 201


@customers_bp.get("/<int:customer_id>/transactions")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def transaction_history_route(customer_id: int):
    try:
        transactions = customer_service.transaction_history(db.session, customer_id)
    except EngineError as e:
        return e.to_dict(), e.status_code
    return {"items": [t.to_dict() for t in transactions], "count": len(transactions)}
