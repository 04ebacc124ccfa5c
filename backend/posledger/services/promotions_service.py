"""
Bundle Discount Engine

WHY: "Any 6 of these for $15" style promotions. Given the cart and the active
bundle rules, work out which bundles apply and what they save.

DESIGN PRINCIPLES:
- calculate_bundle_applications is PURE: no DB access, no writes
- The caller decides how savings are applied to the sale total
- A bundle priced at or above the sum of its parts is never returned
- Results: highest savings first, ties by bundle id

KNOWN LOOSENESS (kept deliberately, pending a product decision):
- original_total sums ALL applicable lines, including units left over after
  bundle_quantity * minimum_quantity, so savings can be overstated.
- Bundles are evaluated independently; a product in two qualifying bundles
  counts fully toward both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from ..models import Bundle, BundleProduct
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_bundle,
    require_positive_quantity,
)
from posledger.time_utils import normalize_datetime, utcnow, within_window
from .concurrency import atomic
from .products_service import get_product

BUNDLE_MUTABLE_FIELDS = {
    "name", "description", "minimum_quantity", "bundle_price_cents",
    "valid_from", "valid_to", "is_active",
}


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    line_total_cents: Optional[int] = None

    @property
    def total_cents(self) -> int:
        if self.line_total_cents is not None:
            return self.line_total_cents
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class BundleRule:
    id: int
    name: str
    minimum_quantity: int
    bundle_price_cents: int
    product_ids: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_model(cls, bundle: Bundle) -> "BundleRule":
        return cls(
            id=bundle.id,
            name=bundle.name,
            minimum_quantity=bundle.minimum_quantity,
            bundle_price_cents=bundle.bundle_price_cents,
            product_ids=frozenset(bundle.product_ids),
        )


@dataclass(frozen=True)
class BundleApplication:
    bundle_id: int
    bundle_name: str
    applicable_items: tuple
    bundle_quantity: int
    original_total_cents: int
    bundle_total_cents: int
    savings_cents: int

    def to_dict(self) -> dict:
        return {
            "bundle_id": self.bundle_id,
            "bundle_name": self.bundle_name,
            "applicable_items": [
                {
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "original_price_cents": line.unit_price_cents,
                }
                for line in self.applicable_items
            ],
            "bundle_quantity": self.bundle_quantity,
            "original_total_cents": self.original_total_cents,
            "bundle_total_cents": self.bundle_total_cents,
            "savings_cents": self.savings_cents,
        }


# =============================================================================
# PURE ENGINE
# =============================================================================

def calculate_bundle_applications(
    cart_lines: Iterable[CartLine],
    bundles: Iterable[BundleRule],
) -> list[BundleApplication]:
    lines = list(cart_lines)
    applications = []

    for bundle in bundles:
        if bundle.minimum_quantity <= 0:
            continue

        applicable = tuple(line for line in lines if line.product_id in bundle.product_ids)
        if not applicable:
            continue

        total_quantity = sum(line.quantity for line in applicable)
        if total_quantity < bundle.minimum_quantity:
            continue

        bundle_quantity = total_quantity // bundle.minimum_quantity

        original_total = sum(line.total_cents for line in applicable)
        bundle_total = bundle_quantity * bundle.bundle_price_cents
        savings = original_total - bundle_total

        if savings > 0:
            applications.append(BundleApplication(
                bundle_id=bundle.id,
                bundle_name=bundle.name,
                applicable_items=applicable,
                bundle_quantity=bundle_quantity,
                original_total_cents=original_total,
                bundle_total_cents=bundle_total,
                savings_cents=savings,
            ))

    applications.sort(key=lambda app: (-app.savings_cents, app.bundle_id))
    return applications


def is_bundle_active(bundle: Bundle, now: Optional[datetime] = None) -> bool:
    if not bundle.is_active:
        return False
    now = now or utcnow()
    return within_window(now, normalize_datetime(bundle.valid_from), normalize_datetime(bundle.valid_to))


# =============================================================================
# QUERIES
# =============================================================================

def get_bundle(session, bundle_id: int) -> Bundle:
    bundle = session.get(Bundle, bundle_id)
    if bundle is None:
        raise NotFoundError(f"Bundle {bundle_id} not found")
    return bundle


def list_bundles(session) -> list[Bundle]:
    return session.query(Bundle).order_by(Bundle.name, Bundle.id).all()


def list_active_bundles(session, now: Optional[datetime] = None) -> list[Bundle]:
    now = now or utcnow()
    candidates = session.query(Bundle).filter_by(is_active=True).order_by(Bundle.id).all()
    return [b for b in candidates if is_bundle_active(b, now)]


def apply_bundles(session, cart_lines: Iterable[CartLine], now: Optional[datetime] = None) -> list[BundleApplication]:
    """Evaluate the cart against bundles active at ``now``. Writes nothing."""
    rules = [BundleRule.from_model(b) for b in list_active_bundles(session, now)]
    return calculate_bundle_applications(cart_lines, rules)


def parse_cart_lines(raw_lines) -> list[CartLine]:
    """Build CartLines from request JSON."""
    if not isinstance(raw_lines, list):
        raise ValidationError("lines must be a list")
    lines = []
    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("each line must be an object")
        for key in ("product_id", "quantity", "unit_price_cents"):
            if key not in raw:
                raise ValidationError(f"line is missing {key}")
        line_total = raw.get("line_total_cents")
        lines.append(CartLine(
            product_id=coerce_int(raw["product_id"], "product_id"),
            quantity=require_positive_quantity(raw["quantity"]),
            unit_price_cents=coerce_int(raw["unit_price_cents"], "unit_price_cents"),
            line_total_cents=coerce_int(line_total, "line_total_cents") if line_total is not None else None,
        ))
    return lines


# =============================================================================
# BUNDLE MANAGEMENT
# =============================================================================

def create_bundle(session, data: dict, product_ids: Iterable[int] = ()) -> Bundle:
    missing = [k for k in ("name", "minimum_quantity", "bundle_price_cents") if data.get(k) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    enforce_rules_bundle(data)
    with atomic(session):
        bundle = Bundle(
            name=data["name"],
            description=data.get("description"),
            minimum_quantity=data["minimum_quantity"],
            bundle_price_cents=data["bundle_price_cents"],
            valid_from=data.get("valid_from"),
            valid_to=data.get("valid_to"),
            is_active=data.get("is_active", True),
        )
        session.add(bundle)
        session.flush()
        for product_id in dict.fromkeys(product_ids):
            product = get_product(session, product_id)
            session.add(BundleProduct(bundle_id=bundle.id, product_id=product.id, product_name=product.name))
    return bundle


def update_bundle(session, bundle_id: int, data: dict) -> Bundle:
    with atomic(session):
        bundle = get_bundle(session, bundle_id)
        merged = {
            "valid_from": bundle.valid_from,
            "valid_to": bundle.valid_to,
            **data,
        }
        enforce_rules_bundle(merged)
        for key in BUNDLE_MUTABLE_FIELDS:
            if key in data:
                setattr(bundle, key, data[key])
    return bundle


def add_bundle_product(session, bundle_id: int, product_id: int) -> BundleProduct:
    with atomic(session):
        bundle = get_bundle(session, bundle_id)
        product = get_product(session, product_id)
        if product.id in bundle.product_ids:
            raise ConflictError(f"Product {product_id} is already in bundle {bundle_id}")
        link = BundleProduct(bundle_id=bundle.id, product_id=product.id, product_name=product.name)
        session.add(link)
    return link


def remove_bundle_product(session, bundle_id: int, product_id: int) -> None:
    with atomic(session):
        link = session.query(BundleProduct).filter_by(bundle_id=bundle_id, product_id=product_id).first()
        if link is None:
            raise NotFoundError(f"Product {product_id} is not in bundle {bundle_id}")
        session.delete(link)


def delete_bundle(session, bundle_id: int) -> None:
    """Delete a bundle; its product links go with it."""
    with atomic(session):
        bundle = get_bundle(session, bundle_id)
        session.delete(bundle)
