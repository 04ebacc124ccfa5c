# Overview: Movement ledger; append-only audit trail of every stock change.

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from ..models import InventoryMovement, StockAdjustment, MOVEMENT_TYPES
from ..validation import ValidationError
"""
Movement Ledger Invariants (authoritative)

- Append-only: rows are never updated or deleted after write.
- new_stock = previous_stock + quantity for every entry.
- Entries are written inside the SAME DB transaction as the stock change they
  record (the ledger only flushes; the caller's scope commits).
- No stock-level validation here; sufficiency checks belong to the resolver
  and adjustment service.
- Reads are ordered newest first; ties on created_at break on id.
"""


def record_movement(
    session,
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    user_id: int,
    reason: Optional[str] = None,
    reference_id=None,
    product_name: Optional[str] = None,
    user_name: Optional[str] = None,
) -> InventoryMovement:
    """
    Append one movement to the ledger.

    - Validates required fields only.
    - Flushes (ids assigned) without committing.
    """
    if product_id is None:
        raise ValidationError("product_id is required")
    if user_id is None:
        raise ValidationError("user_id is required")
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")
    if new_stock != previous_stock + quantity:
        raise ValidationError(
            f"unbalanced movement: {previous_stock} + {quantity} != {new_stock}"
        )

    movement = InventoryMovement(
        product_id=product_id,
        product_name=product_name,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=reason,
        reference_id=str(reference_id) if reference_id is not None else None,
        user_id=user_id,
        user_name=user_name,
    )
    session.add(movement)
    session.flush()
    return movement


def _apply_window(query, column, start: Optional[datetime], end: Optional[datetime]):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


def list_product_movements(
    session,
    product_id: int,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[InventoryMovement]:
    """Movements for one product, newest first."""
    q = session.query(InventoryMovement).filter(InventoryMovement.product_id == product_id)
    q = _apply_window(q, InventoryMovement.created_at, start, end)
    q = q.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def list_movements(
    session,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[InventoryMovement]:
    """Movements across all products, newest first."""
    q = _apply_window(session.query(InventoryMovement), InventoryMovement.created_at, start, end)
    return q.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc()).all()


def list_adjustments(
    session,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[StockAdjustment]:
    q = _apply_window(session.query(StockAdjustment), StockAdjustment.created_at, start, end)
    return q.order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc()).all()


def replay_stock(movements: Iterable[InventoryMovement]) -> Optional[int]:
    """
    Rebuild final stock from movements in write order (oldest first).

    Starts from the earliest entry's previous_stock and applies each quantity,
    checking that every entry continues from the one before it. Returns None
    for an empty history.
    """
    stock = None
    for movement in movements:
        if stock is None:
            stock = movement.previous_stock
        elif movement.previous_stock != stock:
            raise ValueError(
                f"ledger gap at movement {movement.id}: expected previous_stock {stock}, "
                f"found {movement.previous_stock}"
            )
        stock += movement.quantity
    return stock
