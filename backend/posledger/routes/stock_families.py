# Overview: Flask API routes for stock families (shared base-unit pools).

# backend/posledger/routes/stock_families.py
"""
SECURITY: All routes require authentication.
- Read operations require VIEW_INVENTORY permission
- Write operations require MANAGE_STOCK_FAMILIES permission
"""
from flask import Blueprint, current_app, g, request

from ..extensions import db
from ..services import stock_family_service as families
from ..validation import EngineError, ValidationError, coerce_int
from ..decorators import require_auth, require_permission


stock_families_bp = Blueprint("stock_families", __name__, url_prefix="/api/stock-families")


@stock_families_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_families_route():
    items = families.list_families(db.session)
    return {"items": [f.to_dict(include_members=True) for f in items], "count": len(items)}


@stock_families_bp.post("")
@require_auth
@require_permission("MANAGE_STOCK_FAMILIES")
def create_family_route():
    """
    Body: {"name", "base_product_id", "total_stock"?, "category"?, "description"?}

    The base product is enrolled as the 1-unit member.
    """
    payload = request.get_json(silent=True) or {}
    try:
        if "base_product_id" not in payload:
            raise ValidationError("base_product_id is required")
        family = families.create_family(
            db.session,
            name=payload.get("name"),
            base_product_id=coerce_int(payload["base_product_id"], "base_product_id"),
            total_stock=payload.get("total_stock", 0),
            category=payload.get("category"),
            description=payload.get("description"),
        )
    except EngineError as e:
        return e.to_dict(), e.status_code

    return {"family": family.to_dict(include_members=True)}, 201


@stock_families_bp.get("/<int:family_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_family_route(family_id: int):
    try:
        family = families.get_family(db.session, family_id)
    except EngineError as e:
        return e.to_dict(), e.status_code
    return {"family": family.to_dict(include_members=True)}


@stock_families_bp.delete("/<int:family_id>")
@require_auth
@require_permission("MANAGE_STOCK_FAMILIES")
def delete_family_route(family_id: int):
    try:
        families.delete_family(db.session, family_id)
    except EngineError as e:
        return e.to_dict(), e.status_code

    current_app.logger.info("Stock family %s deleted by user %s", family_id, g.current_user.id)
    return {"deleted": True, "id": family_id}


@stock_families_bp.post("/<int:family_id>/members")
@require_auth
@require_permission("MANAGE_STOCK_FAMILIES")
def add_member_route(family_id: int):
    """Body: {"product_id", "units_per_pack", "is_base_unit"?}"""
    payload = request.get_json(silent=True) or {}
    try:
        if "product_id" not in payload:
            raise ValidationError("product_id is required")
        member = families.add_member(
            db.session,
            family_id,
            coerce_int(payload["product_id"], "product_id"),
            payload.get("units_per_pack"),
            is_base_unit=bool(payload.get("is_base_unit", False)),
        )
    except EngineError as e:
        return e.to_dict(), e.status_code

    return {"member": member.to_dict()}, 201


@stock_families_bp.delete("/<int:family_id>/members/<int:product_id>")
@require_auth
@require_permission("MANAGE_STOCK_FAMILIES")
def remove_member_route(family_id: int, product_id: int):
    try:
        families.remove_member(db.session, family_id, product_id)
    except EngineError as e:
        return e.to_dict(), e.status_code
    return {"deleted": True, "family_id": family_id, "product_id": product_id}


@stock_families_bp.post("/<int:family_id>/restock")
@require_auth
@require_permission("MANAGE_STOCK_FAMILIES")
def restock_family_route(family_id: int):
    """Body: {"base_units": int, "reason"?}"""
    payload = request.get_json(silent=True) or {}
    user = g.current_user
    try:
        family = families.restock_family(
            db.session,
            family_id,
            payload.get("base_units"),
            user_id=user.id,
            user_name=user.name,
            reason=payload.get("reason"),
            attempts=current_app.config["STOCK_RETRY_ATTEMPTS"],
        )
    except EngineError as e:
        return e.to_dict(), e.status_code

    return {"family": family.to_dict(include_members=True)}
