"""
Sale Completion

WHY: A finalized cart has to move stock, money and customer history at once.
This is the single place where the pricing, resolver and credit ledger meet.

DESIGN PRINCIPLES:
- Cart is priced first (bundle discount), then everything is written in ONE
  atomic scope: sale row, lines, per-line stock deduction + movement, store
  credit and purchase stats. A failure on any line leaves nothing behind.
- Only the best single bundle application is credited to the sale, so
  overlapping bundles are never counted twice.
- Shift reconciliation reads completed sales by timestamp; the active shift
  id is attached for reporting only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..models import PAYMENT_METHODS, Sale, SaleLine, Shift, SHIFT_ACTIVE
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_int,
    require_non_negative_quantity,
    require_positive_quantity,
)
from posledger.time_utils import utcnow
from .concurrency import DEFAULT_ATTEMPTS, atomic, run_with_retry
from .customer_service import adjust_balance, get_customer, record_purchase
from .products_service import get_product
from .promotions_service import CartLine, apply_bundles
from .stock_family_service import deduct_stock


def find_completed_sales(session, start: datetime, end: datetime) -> list[Sale]:
    """Completed sales with start <= created_at <= end, oldest first."""
    return session.query(Sale).filter(
        Sale.status == "completed",
        Sale.created_at >= start,
        Sale.created_at <= end,
    ).order_by(Sale.created_at.asc(), Sale.id.asc()).all()


def get_sale(session, sale_id: int) -> Sale:
    sale = session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[Sale]:
    query = session.query(Sale)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def _build_cart(session, raw_lines) -> list[CartLine]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")

    cart = []
    for raw in raw_lines:
        if not isinstance(raw, dict) or "product_id" not in raw:
            raise ValidationError("each line needs a product_id")
        product = get_product(session, coerce_int(raw["product_id"], "product_id"))
        quantity = require_positive_quantity(raw.get("quantity"))
        unit_price = raw.get("unit_price_cents")
        if unit_price is None:
            unit_price = product.price_cents
        unit_price = require_non_negative_quantity(unit_price, "unit_price_cents")
        cart.append(CartLine(product_id=product.id, quantity=quantity, unit_price_cents=unit_price))
    return cart


def _check_payment(payment_method, total_cents, cash_amount_cents, eft_amount_cents, customer_id):
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    if payment_method == "split":
        if cash_amount_cents is None or eft_amount_cents is None:
            raise ValidationError("split payments need cash_amount_cents and eft_amount_cents")
        cash = require_non_negative_quantity(cash_amount_cents, "cash_amount_cents")
        eft = require_non_negative_quantity(eft_amount_cents, "eft_amount_cents")
        if cash + eft != total_cents:
            raise ValidationError(
                f"split portions ({cash} + {eft}) must equal the sale total ({total_cents})"
            )
        return cash, eft

    if payment_method == "credit" and customer_id is None:
        raise ValidationError("credit payments need a customer_id")

    return None, None


def complete_sale(
    session,
    *,
    user_id: int,
    lines,
    payment_method: str,
    cash_amount_cents=None,
    eft_amount_cents=None,
    customer_id: Optional[int] = None,
    apply_bundle_discount: bool = True,
    user_name: Optional[str] = None,
    now: Optional[datetime] = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Sale:
    """
    Finalize a cart.

    Raises InsufficientStockError (nothing written) when any line cannot be
    covered, ValidationError for a malformed cart or payment, NotFoundError
    for unknown products or customers.
    """
    if user_id is None:
        raise ValidationError("user_id is required")

    cart = _build_cart(session, lines)
    subtotal = sum(line.total_cents for line in cart)

    discount = 0
    if apply_bundle_discount:
        applications = apply_bundles(session, cart, now)
        if applications:
            discount = applications[0].savings_cents
    total = subtotal - discount

    if customer_id is not None:
        customer_id = get_customer(session, coerce_int(customer_id, "customer_id")).id
    cash_portion, eft_portion = _check_payment(
        payment_method, total, cash_amount_cents, eft_amount_cents, customer_id
    )

    def _op():
        with atomic(session):
            active_shift = session.query(Shift).filter_by(user_id=user_id, status=SHIFT_ACTIVE).first()
            sale = Sale(
                status="completed",
                subtotal_cents=subtotal,
                discount_cents=discount,
                total_cents=total,
                payment_method=payment_method,
                cash_amount_cents=cash_portion,
                eft_amount_cents=eft_portion,
                customer_id=customer_id,
                shift_id=active_shift.id if active_shift else None,
                user_id=user_id,
                created_at=now or utcnow(),
            )
            session.add(sale)
            session.flush()

            for line in cart:
                session.add(SaleLine(
                    sale_id=sale.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.total_cents,
                ))
                deduct_stock(
                    session,
                    line.product_id,
                    line.quantity,
                    user_id=user_id,
                    user_name=user_name,
                    reference_id=sale.id,
                    movement_type="sale",
                    commit=False,
                )

            if customer_id is not None:
                if payment_method == "credit" and total > 0:
                    adjust_balance(
                        session,
                        customer_id,
                        -total,
                        f"Store credit used on sale {sale.id}",
                        sale_id=sale.id,
                        commit=False,
                    )
                record_purchase(session, customer_id, total, sale_id=sale.id, commit=False)
            return sale

    return run_with_retry(session, _op, attempts=attempts)
