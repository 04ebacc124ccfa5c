# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/posledger/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_INVENTORY permission
- Write operations require MANAGE_PRODUCTS permission

Stock is writable only on create (opening stock). Every later change goes
through /api/inventory so the movement ledger stays complete.
"""
from flask import Blueprint, request

from ..extensions import db
from ..models import Product
from ..services.products_service import (
    create_product,
    get_product,
    list_products,
    update_product,
)
from ..services.stock_family_service import available_stock
from ..validation import (
    EngineError,
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from ..decorators import require_auth, require_permission

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "category", "price_cents", "cost_cents", "stock", "is_active"},
    required_on_create={"sku", "name"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "category", "price_cents", "cost_cents", "is_active"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products_route():
    """
    Query params:
    - active_only: "1"/"true" to hide inactive products
    """
    active_only = request.args.get("active_only", "").lower() in ("1", "true", "yes")
    products = list_products(db.session, active_only=active_only)
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)
        product = create_product(db.session, patch=patch)
    except EngineError as e:
        return e.to_dict(), e.status_code

    return {"product": product.to_dict()}, 201


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        product = get_product(db.session, product_id)
        available = available_stock(db.session, product_id)
    except EngineError as e:
        return e.to_dict(), e.status_code

    data = product.to_dict()
    data["available_stock"] = available
    return {"product": data}


@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=PRODUCT_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_product(patch)
        product = update_product(db.session, product_id, patch)
    except EngineError as e:
        return e.to_dict(), e.status_code

    return {"product": product.to_dict()}
