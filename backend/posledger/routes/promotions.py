from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..extensions import db
from ..models import Bundle
from ..services import promotions_service
from ..validation import (
    EngineError,
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    validate_payload,
)
from posledger.time_utils import parse_iso_datetime

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/bundles")

BUNDLE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "minimum_quantity", "bundle_price_cents",
        "valid_from", "valid_to", "is_active",
    },
    required_on_create={"name", "minimum_quantity", "bundle_price_cents"},
)


def _error(e: EngineError):
    return jsonify(e.to_dict()), e.status_code


def _bundle_patch(data: dict, *, partial: bool) -> dict:
    fields = {k: v for k, v in data.items() if k != "product_ids"}
    return validate_payload(model=Bundle, payload=fields, policy=BUNDLE_POLICY, partial=partial)


@promotions_bp.route("", methods=["GET"])
@require_auth
@require_permission("VIEW_PROMOTIONS")
def list_bundles():
    bundles = promotions_service.list_bundles(db.session)
    return jsonify({"items": [b.to_dict() for b in bundles], "count": len(bundles)})


@promotions_bp.route("/active", methods=["GET"])
@require_auth
@require_permission("VIEW_PROMOTIONS")
def list_active_bundles():
    try:
        now = parse_iso_datetime(request.args.get("at"))
    except ValueError:
        return _error(ValidationError("at must be an ISO-8601 datetime"))
    bundles = promotions_service.list_active_bundles(db.session, now)
    return jsonify({"items": [b.to_dict() for b in bundles], "count": len(bundles)})


@promotions_bp.route("/apply", methods=["POST"])
@require_auth
@require_permission("VIEW_PROMOTIONS")
def apply_bundles():
    """
    Price a cart against active bundles. Writes nothing.

    Body: {"lines": [{"product_id", "quantity", "unit_price_cents", "line_total_cents"?}]}
    """
    data = request.get_json(silent=True) or {}
    try:
        lines = promotions_service.parse_cart_lines(data.get("lines"))
        applications = promotions_service.apply_bundles(db.session, lines)
    except EngineError as e:
        return _error(e)
    return jsonify({"applications": [a.to_dict() for a in applications]})


@promotions_bp.route("", methods=["POST"])
@require_auth
@require_permission("MANAGE_PROMOTIONS")
def create_bundle():
    data = request.get_json(silent=True) or {}
    try:
        patch = _bundle_patch(data, partial=False)
        product_ids = [coerce_int(pid, "product_ids") for pid in data.get("product_ids") or []]
        bundle = promotions_service.create_bundle(db.session, patch, product_ids)
    except EngineError as e:
        return _error(e)
    return jsonify({"bundle": bundle.to_dict()}), 201


@promotions_bp.route("/<int:bundle_id>", methods=["GET"])
@require_auth
@require_permission("VIEW_PROMOTIONS")
def get_bundle(bundle_id: int):
    try:
        bundle = promotions_service.get_bundle(db.session, bundle_id)
    except EngineError as e:
        return _error(e)
    return jsonify({"bundle": bundle.to_dict()})


@promotions_bp.route("/<int:bundle_id>", methods=["PATCH"])
@require_auth
@require_permission("MANAGE_PROMOTIONS")
def update_bundle(bundle_id: int):
    data = request.get_json(silent=True) or {}
    try:
        patch = _bundle_patch(data, partial=True)
        bundle = promotions_service.update_bundle(db.session, bundle_id, patch)
    except EngineError as e:
        return _error(e)
    return jsonify({"bundle": bundle.to_dict()})


@promotions_bp.route("/<int:bundle_id>", methods=["DELETE"])
@require_auth
@require_permission("MANAGE_PROMOTIONS")
def delete_bundle(bundle_id: int):
    try:
        promotions_service.delete_bundle(db.session, bundle_id)
    except EngineError as e:
        return _error(e)
    return jsonify({"deleted": True, "id": bundle_id})


@promotions_bp.route("/<int:bundle_id>/products", methods=["POST"])
@require_auth
@require_permission("MANAGE_PROMOTIONS")
def add_bundle_product(bundle_id: int):
    data = request.get_json(silent=True) or {}
    try:
        if "product_id" not in data:
            raise ValidationError("product_id is required")
        link = promotions_service.add_bundle_product(
            db.session, bundle_id, coerce_int(data["product_id"], "product_id")
        )
    except EngineError as e:
        return _error(e)
    return jsonify({"product": link.to_dict()}), 201


@promotions_bp.route("/<int:bundle_id>/products/<int:product_id>", methods=["DELETE"])
@require_auth
@require_permission("MANAGE_PROMOTIONS")
def remove_bundle_product(bundle_id: int, product_id: int):
    try:
        promotions_service.remove_bundle_product(db.session, bundle_id, product_id)
    except EngineError as e:
        return _error(e)
    return jsonify({"deleted": True, "bundle_id": bundle_id, "product_id": product_id})
