# backend/posledger/services/products_service.py
"""
Product catalog collaborator.

The engine consumes only a narrow interface from the catalog:
- get_product(id)
- update_product(id, patch)        catalog metadata (name, price, category)
- set_stock(product, new_stock)    display-level stock write
- link_family(product, family_id)  family membership pointer

Stock is never written through update_product: every stock change goes
through the resolver or adjustment service so the movement ledger stays complete.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..models import Product
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import atomic, lock_for_update

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "category", "price_cents", "cost_cents", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(session, product_id: int, *, lock: bool = False) -> Product:
    query = session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(session, *, active_only: bool = False) -> list[Product]:
    q = session.query(Product)
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(session, *, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    Initial stock is accepted here (opening balance for a new SKU); later
    changes must go through adjust_stock.
    """
    product = Product(
        sku=patch["sku"],
        name=patch["name"],
        category=patch.get("category"),
        price_cents=patch.get("price_cents") or 0,
        cost_cents=patch.get("cost_cents") or 0,
        stock=patch.get("stock") or 0,
        is_active=patch.get("is_active", True),
    )
    session.add(product)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError(f"SKU '{patch['sku']}' already exists")
    return product


def update_product(session, product_id: int, patch: dict) -> Product:
    with atomic(session):
        product = get_product(session, product_id)
        apply_product_patch(product, patch)
    return product


def set_stock(product: Product, new_stock: int) -> None:
    """Display-level stock write. Caller owns the transaction and the ledger entry."""
    if new_stock < 0:
        raise ValidationError("stock cannot be negative")
    product.stock = new_stock


def link_family(product: Product, family_id: int | None) -> None:
    product.stock_family_id = family_id
