"""
Stock Family Resolver

WHY: Singles, packs and cases of the same item share one physical pool.
Callers ask "how many of THIS product can I sell?" and "take N of THIS
product"; the resolver decides whether that hits the product's own stock
or the shared base-unit pool.

DESIGN PRINCIPLES:
- Family total_stock is authoritative and kept in base units
- Product.stock is display-level for family members
- Read family, check, decrement family, update product, write movement:
  one atomic unit, version-checked and row-locked
- A lost race is retried against fresh state, never overwritten
- total_stock never goes below zero
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..models import Product, StockFamily, StockFamilyMember
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    require_non_negative_quantity,
    require_positive_quantity,
)
from .concurrency import DEFAULT_ATTEMPTS, atomic, lock_for_update, run_with_retry
from .ledger_service import record_movement
from .products_service import get_product, link_family, set_stock


# =============================================================================
# LOOKUPS
# =============================================================================

def get_family(session, family_id: int, *, lock: bool = False) -> StockFamily:
    query = session.query(StockFamily).filter_by(id=family_id)
    if lock:
        query = lock_for_update(query)
    family = query.first()
    if family is None:
        raise NotFoundError(f"Stock family {family_id} not found")
    return family


def list_families(session) -> list[StockFamily]:
    return session.query(StockFamily).order_by(StockFamily.name, StockFamily.id).all()


def get_members(session, family_id: int) -> list[StockFamilyMember]:
    return session.query(StockFamilyMember).filter_by(
        stock_family_id=family_id
    ).order_by(StockFamilyMember.id).all()


def get_membership(session, product_id: int) -> Optional[StockFamilyMember]:
    """The product's family link, if any (at most one by constraint)."""
    return session.query(StockFamilyMember).filter_by(product_id=product_id).first()


def find_family_for_product(session, product_id: int) -> Optional[StockFamily]:
    member = get_membership(session, product_id)
    if member is None:
        return None
    return session.get(StockFamily, member.stock_family_id)


# =============================================================================
# AVAILABILITY
# =============================================================================

def available_stock(session, product_id: int) -> int:
    """
    Sellable quantity of a product.

    - No family: the product's own stock
    - Family member: floor(family.total_stock / units_per_pack)

    Pure read; repeated calls without a mutation return the same value.
    """
    product = get_product(session, product_id)
    member = get_membership(session, product_id)
    if member is None:
        return product.stock

    family = session.get(StockFamily, member.stock_family_id)
    if family is None:
        return 0
    return family.total_stock // member.units_per_pack


# =============================================================================
# DEDUCTION
# =============================================================================

def _deduct_inner(
    session,
    *,
    product_id: int,
    quantity: int,
    user_id: int,
    user_name: Optional[str],
    reference_id,
    movement_type: str,
    reason: Optional[str],
):
    product = get_product(session, product_id, lock=True)
    member = get_membership(session, product_id)
    previous = product.stock

    if member is None:
        if previous < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for product {product_id}: requested {quantity}, available {previous}"
            )
        new_stock = previous - quantity
    else:
        family = get_family(session, member.stock_family_id, lock=True)
        base_units = quantity * member.units_per_pack
        if family.total_stock < base_units:
            raise InsufficientStockError(
                f"Insufficient stock in family '{family.name}': requested {base_units} base units, "
                f"available {family.total_stock}"
            )
        family.total_stock = family.total_stock - base_units
        # Display stock follows the sale but cannot drop below zero
        new_stock = max(0, previous - quantity)

    set_stock(product, new_stock)

    return record_movement(
        session,
        product_id=product.id,
        product_name=product.name,
        movement_type=movement_type,
        quantity=new_stock - previous,
        previous_stock=previous,
        new_stock=new_stock,
        reason=reason,
        reference_id=reference_id,
        user_id=user_id,
        user_name=user_name,
    )


def deduct_stock(
    session,
    product_id: int,
    quantity,
    *,
    user_id: int,
    user_name: Optional[str] = None,
    reference_id=None,
    movement_type: str = "sale",
    reason: Optional[str] = None,
    commit: bool = True,
    attempts: int = DEFAULT_ATTEMPTS,
):
    """
    Take ``quantity`` of a product out of stock and record the movement.

    Family members consume quantity * units_per_pack base units from the
    shared pool. Raises InsufficientStockError when the pool (or the product's
    own stock) cannot cover the request; nothing is written in that case.

    commit=False joins an enclosing transaction (sale completion); the caller
    then owns commit and retry.
    """
    quantity = require_positive_quantity(quantity)

    def _op():
        with atomic(session, commit=commit):
            return _deduct_inner(
                session,
                product_id=product_id,
                quantity=quantity,
                user_id=user_id,
                user_name=user_name,
                reference_id=reference_id,
                movement_type=movement_type,
                reason=reason,
            )

    if not commit:
        return _op()
    return run_with_retry(session, _op, attempts=attempts)


def apply_family_delta(session, product_id: int, display_delta: int) -> Optional[StockFamily]:
    """
    Propagate a display-level stock change of a member product to its family.

    The delta is converted to base units with the member's units_per_pack,
    the same conversion deduct_stock uses. The pool is clamped at zero.
    Returns the family, or None when the product is unaffiliated.
    Runs inside the caller's transaction.
    """
    member = get_membership(session, product_id)
    if member is None:
        return None

    family = get_family(session, member.stock_family_id, lock=True)
    family.total_stock = max(0, family.total_stock + display_delta * member.units_per_pack)
    return family


# =============================================================================
# FAMILY MANAGEMENT
# =============================================================================

def _ensure_unaffiliated(session, product: Product) -> None:
    existing = get_membership(session, product.id)
    if existing is not None:
        raise ConflictError(
            f"Product {product.id} already belongs to stock family {existing.stock_family_id}"
        )


def create_family(
    session,
    *,
    name: str,
    base_product_id: int,
    total_stock=0,
    category: Optional[str] = None,
    description: Optional[str] = None,
) -> StockFamily:
    """
    Create a family and enrol its base product as the 1-unit member.
    """
    if not name or not str(name).strip():
        raise ValidationError("name is required")
    total_stock = require_non_negative_quantity(total_stock, "total_stock")

    with atomic(session):
        base_product = get_product(session, base_product_id)
        _ensure_unaffiliated(session, base_product)

        family = StockFamily(
            name=str(name).strip(),
            description=description,
            category=category,
            base_product_id=base_product.id,
            total_stock=total_stock,
        )
        session.add(family)
        session.flush()

        session.add(StockFamilyMember(
            stock_family_id=family.id,
            product_id=base_product.id,
            units_per_pack=1,
            is_base_unit=True,
        ))
        link_family(base_product, family.id)

    return family


def add_member(
    session,
    family_id: int,
    product_id: int,
    units_per_pack,
    is_base_unit: bool = False,
) -> StockFamilyMember:
    """
    Enrol a product in a family.

    A product belongs to at most one family; enrolling it twice is a
    ConflictError (also enforced by a unique constraint for racing calls).
    """
    units_per_pack = require_positive_quantity(units_per_pack, "units_per_pack")

    with atomic(session):
        family = get_family(session, family_id)
        product = get_product(session, product_id)
        _ensure_unaffiliated(session, product)

        member = StockFamilyMember(
            stock_family_id=family.id,
            product_id=product.id,
            units_per_pack=units_per_pack,
            is_base_unit=bool(is_base_unit),
        )
        session.add(member)
        link_family(product, family.id)
        try:
            session.flush()
        except IntegrityError:
            raise ConflictError(f"Product {product_id} already belongs to a stock family")

    return member


def remove_member(session, family_id: int, product_id: int) -> None:
    """Unlink a product from a family. The family pool is left unchanged."""
    with atomic(session):
        member = session.query(StockFamilyMember).filter_by(
            stock_family_id=family_id,
            product_id=product_id,
        ).first()
        if member is None:
            raise NotFoundError(f"Product {product_id} is not a member of stock family {family_id}")

        product = get_product(session, product_id)
        link_family(product, None)
        session.delete(member)


def delete_family(session, family_id: int) -> None:
    """
    Delete a family.

    Member products get their family reference cleared first, then the
    member links go, then the family itself. All or nothing.
    """
    with atomic(session):
        family = get_family(session, family_id, lock=True)
        members = get_members(session, family_id)

        for member in members:
            product = session.get(Product, member.product_id)
            if product is not None:
                link_family(product, None)
        session.flush()

        for member in members:
            session.delete(member)
        session.flush()

        session.delete(family)


def restock_family(
    session,
    family_id: int,
    base_units,
    *,
    user_id: int,
    user_name: Optional[str] = None,
    reason: Optional[str] = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> StockFamily:
    """
    Receive base units into the family pool.

    The base product's display stock is brought in line with the pool and a
    'restock' movement records that change.
    """
    base_units = require_positive_quantity(base_units, "base_units")

    def _op():
        with atomic(session):
            family = get_family(session, family_id, lock=True)
            family.total_stock = family.total_stock + base_units

            member = get_membership(session, family.base_product_id)
            if member is not None and member.stock_family_id == family.id:
                product = get_product(session, family.base_product_id, lock=True)
                previous = product.stock
                new_stock = family.total_stock // member.units_per_pack
                if new_stock != previous:
                    set_stock(product, new_stock)
                    record_movement(
                        session,
                        product_id=product.id,
                        product_name=product.name,
                        movement_type="restock",
                        quantity=new_stock - previous,
                        previous_stock=previous,
                        new_stock=new_stock,
                        reason=reason or f"Restocked {base_units} base units into '{family.name}'",
                        reference_id=f"family:{family.id}",
                        user_id=user_id,
                        user_name=user_name,
                    )
            return family

    return run_with_retry(session, _op, attempts=attempts)
