# Overview: Customer credit ledger; balance mutation with an append-only transaction history.

from __future__ import annotations

from typing import Optional

from sqlalchemy import or_

from ..models import Customer, CustomerTransaction
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_int,
    require_non_negative_quantity,
    require_reason,
)
from posledger.time_utils import utcnow
from .concurrency import DEFAULT_ATTEMPTS, atomic, lock_for_update, run_with_retry
"""
Customer Credit Invariants (authoritative)

- credit_balance_cents may go negative (customer owes the store); no floor.
- Every balance change appends exactly one CustomerTransaction in the same
  transaction: credit_add when amount > 0, credit_deduct otherwise, with
  amount_cents = abs(amount).
- Purchases update total_purchases_cents / last_purchase_date and never touch
  the credit balance.
- Customer rows are version-checked; a lost concurrent update is retried.
"""

CUSTOMER_MUTABLE_FIELDS = {"first_name", "last_name", "email", "phone", "address"}


def get_customer(session, customer_id: int, *, lock: bool = False) -> Customer:
    query = session.query(Customer).filter_by(id=customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def create_customer(session, data: dict) -> Customer:
    for key in ("first_name", "last_name"):
        if not data.get(key) or not str(data[key]).strip():
            raise ValidationError(f"{key} is required")

    with atomic(session):
        customer = Customer(
            first_name=str(data["first_name"]).strip(),
            last_name=str(data["last_name"]).strip(),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
        )
        session.add(customer)
    return customer


def update_customer(session, customer_id: int, data: dict) -> Customer:
    with atomic(session):
        customer = get_customer(session, customer_id)
        for key in CUSTOMER_MUTABLE_FIELDS:
            if key in data:
                setattr(customer, key, data[key])
    return customer


def search_customers(session, query: str, limit: int = 50) -> list[Customer]:
    """Case-insensitive match on first/last name, email or phone."""
    term = (query or "").strip()
    q = session.query(Customer)
    if term:
        pattern = f"%{term}%"
        q = q.filter(or_(
            Customer.first_name.ilike(pattern),
            Customer.last_name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.like(pattern),
        ))
    return q.order_by(Customer.first_name, Customer.last_name, Customer.id).limit(limit).all()


def adjust_balance(
    session,
    customer_id: int,
    amount_cents,
    description,
    sale_id: Optional[int] = None,
    *,
    commit: bool = True,
    attempts: int = DEFAULT_ATTEMPTS,
) -> CustomerTransaction:
    """
    Add (positive) or deduct (negative) store credit.

    Returns the appended transaction. The customer's new balance is
    ``transaction.customer.credit_balance_cents``.
    """
    amount_cents = coerce_int(amount_cents, "amount_cents")
    if amount_cents == 0:
        raise ValidationError("amount_cents must be non-zero")
    description = require_reason(description, "description")

    def _op():
        with atomic(session, commit=commit):
            customer = get_customer(session, customer_id, lock=True)
            customer.credit_balance_cents = customer.credit_balance_cents + amount_cents

            txn = CustomerTransaction(
                customer_id=customer.id,
                type="credit_add" if amount_cents > 0 else "credit_deduct",
                amount_cents=abs(amount_cents),
                description=description,
                sale_id=sale_id,
            )
            session.add(txn)
            return txn

    if not commit:
        return _op()
    return run_with_retry(session, _op, attempts=attempts)


def record_purchase(
    session,
    customer_id: int,
    purchase_amount_cents,
    *,
    sale_id: Optional[int] = None,
    description: Optional[str] = None,
    commit: bool = True,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Customer:
    """
    Bump lifetime purchases and last purchase date. Credit balance untouched.

    The amount must be >= 0; it is stored on the purchase row as given.
    """
    purchase_amount_cents = require_non_negative_quantity(purchase_amount_cents, "purchase_amount_cents")

    def _op():
        with atomic(session, commit=commit):
            customer = get_customer(session, customer_id, lock=True)
            customer.total_purchases_cents = customer.total_purchases_cents + purchase_amount_cents
            customer.last_purchase_date = utcnow()

            session.add(CustomerTransaction(
                customer_id=customer.id,
                type="purchase",
                amount_cents=purchase_amount_cents,
                description=description or (f"Sale {sale_id}" if sale_id else "Purchase"),
                sale_id=sale_id,
            ))
            return customer

    if not commit:
        return _op()
    return run_with_retry(session, _op, attempts=attempts)


def transaction_history(session, customer_id: int) -> list[CustomerTransaction]:
    """Newest first."""
    get_customer(session, customer_id)
    return session.query(CustomerTransaction).filter_by(
        customer_id=customer_id
    ).order_by(CustomerTransaction.created_at.desc(), CustomerTransaction.id.desc()).all()
