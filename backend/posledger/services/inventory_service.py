# Overview: Stock adjustments, sale movements and stock reports.

# backend/posledger/services/inventory_service.py

from __future__ import annotations

from typing import Optional

from ..models import Product, StockAdjustment, ADJUSTMENT_TYPES
from ..validation import (
    NotFoundError,
    ValidationError,
    require_non_negative_quantity,
    require_reason,
)
from .concurrency import DEFAULT_ATTEMPTS, atomic, run_with_retry
from .ledger_service import record_movement
from .products_service import get_product, set_stock
from .stock_family_service import apply_family_delta, get_membership
"""
Inventory Invariants (authoritative)

Adjustments:
- reason is mandatory and non-empty; a blank reason is rejected before any write.
- increase -> previous + q; decrease -> max(0, previous - q); set -> q.
- The display delta is propagated to the product's stock family in base units.
- One StockAdjustment + one 'adjustment' movement referencing it are written in
  the SAME transaction as the stock change. Either all three land or none do.

Reports:
- Read-only; never fail except on storage errors.
"""

DEFAULT_LOW_STOCK_THRESHOLD = 5


def resolve_new_stock(adjustment_type: str, previous: int, quantity: int) -> int:
    if adjustment_type == "increase":
        return previous + quantity
    if adjustment_type == "decrease":
        return max(0, previous - quantity)
    if adjustment_type == "set":
        return quantity
    raise ValidationError(f"adjustment_type must be one of: {', '.join(ADJUSTMENT_TYPES)}")


def adjust_stock(
    session,
    product_id: int,
    adjustment_type: str,
    quantity,
    reason,
    user_id: int,
    *,
    user_name: Optional[str] = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> StockAdjustment:
    """
    Manual / administrative stock correction.

    Decreases silently clamp at zero instead of erroring.
    """
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(f"adjustment_type must be one of: {', '.join(ADJUSTMENT_TYPES)}")
    quantity = require_non_negative_quantity(quantity)
    reason = require_reason(reason)
    if user_id is None:
        raise ValidationError("user_id is required")

    def _op():
        with atomic(session):
            product = get_product(session, product_id, lock=True)

            previous = product.stock
            new_stock = resolve_new_stock(adjustment_type, previous, quantity)
            delta = new_stock - previous

            set_stock(product, new_stock)
            apply_family_delta(session, product.id, delta)

            adjustment = StockAdjustment(
                product_id=product.id,
                adjustment_type=adjustment_type,
                quantity=quantity,
                reason=reason,
                user_id=user_id,
                user_name=user_name,
            )
            session.add(adjustment)
            session.flush()

            record_movement(
                session,
                product_id=product.id,
                product_name=product.name,
                movement_type="adjustment",
                quantity=delta,
                previous_stock=previous,
                new_stock=new_stock,
                reason=reason,
                reference_id=adjustment.id,
                user_id=user_id,
                user_name=user_name,
            )
            return adjustment

    return run_with_retry(session, _op, attempts=attempts)


def record_sale_movement(
    session,
    product_id: int,
    quantity: int,
    sale_id,
    user_id: int,
    *,
    user_name: Optional[str] = None,
    commit: bool = True,
):
    """
    Ledger entry for a sale line whose stock was already decremented.

    previous = current stock + quantity, new = current stock.
    """
    with atomic(session, commit=commit):
        product = session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        movement = record_movement(
            session,
            product_id=product.id,
            product_name=product.name,
            movement_type="sale",
            quantity=-quantity,
            previous_stock=product.stock + quantity,
            new_stock=product.stock,
            reference_id=sale_id,
            user_id=user_id,
            user_name=user_name,
        )
    return movement


# =============================================================================
# REPORTS
# =============================================================================

def low_stock_report(session, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> list[dict]:
    """Active products whose display stock is at or below ``threshold``."""
    products = session.query(Product).filter(
        Product.is_active.is_(True),
        Product.stock <= threshold,
    ).order_by(Product.stock.asc(), Product.name.asc(), Product.id.asc()).all()

    rows = []
    for product in products:
        row = product.to_dict()
        member = get_membership(session, product.id)
        if member is not None and member.stock_family is not None:
            row["available_stock"] = member.stock_family.total_stock // member.units_per_pack
        else:
            row["available_stock"] = product.stock
        rows.append(row)
    return rows


def stock_value_report(session) -> dict:
    """
    Retail and cost value of display stock, overall and per category.
    """
    products = session.query(Product).order_by(Product.id).all()

    total_stock_value = 0
    total_cost_value = 0
    categories: dict[str, dict] = {}

    for product in products:
        stock_value = product.stock * product.price_cents
        cost_value = product.stock * product.cost_cents

        total_stock_value += stock_value
        total_cost_value += cost_value

        bucket = categories.setdefault(
            product.category or "Uncategorized",
            {"count": 0, "value_cents": 0, "cost_cents": 0},
        )
        bucket["count"] += product.stock
        bucket["value_cents"] += stock_value
        bucket["cost_cents"] += cost_value

    return {
        "total_products": len(products),
        "total_stock_value_cents": total_stock_value,
        "total_cost_value_cents": total_cost_value,
        "categories": categories,
    }
