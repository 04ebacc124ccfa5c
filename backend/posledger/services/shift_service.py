"""
Shift Reconciliation Engine

WHY: Each cashier works a drawer. At close we compare the cash they count
against what the drawer should hold and route large discrepancies to a
manager before the shift is accepted.

DESIGN PRINCIPLES:
- One active shift per user (checked here, enforced by a partial unique index)
- active -> completed | pending_approval at close; pending_approval -> completed
  on approval. Nothing leads back to active.
- Summary fields are computed once at close and frozen on the row
- "now" is captured once per close and used for both the window and end_time
- Amounts are integer cents
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..models import (
    CustomerTransaction,
    Sale,
    Shift,
    User,
    SHIFT_ACTIVE,
    SHIFT_COMPLETED,
    SHIFT_PENDING_APPROVAL,
)
from ..validation import (
    ConflictError,
    NotFoundError,
    ShiftAlreadyActiveError,
    ValidationError,
    require_balance_cents,
)
from posledger.time_utils import utcnow
from .concurrency import DEFAULT_ATTEMPTS, atomic, lock_for_update, run_with_retry
from .sales_service import find_completed_sales

# 10.00 in currency units
VARIANCE_THRESHOLD_CENTS = 1000


@dataclass(frozen=True)
class ShiftSummary:
    total_sales: int = 0
    total_refunds: int = 0
    total_credit_issued: int = 0
    cash_sales: int = 0
    eft_sales: int = 0
    transaction_count: int = 0
    expected_cash_balance: int = 0

    def to_dict(self) -> dict:
        data = {f"{key}_cents": value for key, value in asdict(self).items()}
        data["transaction_count"] = data.pop("transaction_count_cents")
        return data


# =============================================================================
# SUMMARY
# =============================================================================

def calculate_shift_summary(
    session,
    start: datetime,
    end: datetime,
    opening_balance_cents: int = 0,
) -> ShiftSummary:
    """
    Aggregate completed sales whose timestamp falls in [start, end].

    Positive totals count as sales, negative totals as refunds (absolute
    value). Cash and EFT buckets follow the payment method; a split payment
    contributes its recorded cash and EFT portions. Store credit handed out
    in the window (credit_add transactions) is reported separately.
    """
    total_sales = 0
    total_refunds = 0
    cash_sales = 0
    eft_sales = 0

    sales = find_completed_sales(session, start, end)
    for sale in sales:
        total = sale.total_cents
        if total > 0:
            total_sales += total
            if sale.payment_method == "cash":
                cash_sales += total
            elif sale.payment_method == "eft":
                eft_sales += total
            elif sale.payment_method == "split":
                cash_sales += sale.cash_amount_cents or 0
                eft_sales += sale.eft_amount_cents or 0
        else:
            total_refunds += abs(total)

    credit_rows = session.query(CustomerTransaction.amount_cents).filter(
        CustomerTransaction.type == "credit_add",
        CustomerTransaction.created_at >= start,
        CustomerTransaction.created_at <= end,
    ).all()
    total_credit_issued = sum(row[0] for row in credit_rows)

    return ShiftSummary(
        total_sales=total_sales,
        total_refunds=total_refunds,
        total_credit_issued=total_credit_issued,
        cash_sales=cash_sales,
        eft_sales=eft_sales,
        transaction_count=len(sales),
        expected_cash_balance=opening_balance_cents + cash_sales,
    )


# =============================================================================
# LIFECYCLE
# =============================================================================

def _require_drawer_count(amount, field: str) -> int:
    """Opening and closing counts are both positive cents; zero is not a count."""
    cents = require_balance_cents(amount, field)
    if cents == 0:
        raise ValidationError(f"{field} must be > 0")
    return cents


def get_shift(session, shift_id: int, *, lock: bool = False) -> Shift:
    query = session.query(Shift).filter_by(id=shift_id)
    if lock:
        query = lock_for_update(query)
    shift = query.first()
    if shift is None:
        raise NotFoundError(f"Shift {shift_id} not found")
    return shift


def get_active_shift(session, user_id: int) -> Optional[Shift]:
    return session.query(Shift).filter_by(user_id=user_id, status=SHIFT_ACTIVE).first()


def start_shift(
    session,
    user_id: int,
    opening_balance_cents,
    *,
    user_name: Optional[str] = None,
) -> Shift:
    """
    Open a drawer for ``user_id``.

    Raises ShiftAlreadyActiveError when the user already holds an active
    shift, including when a concurrent start wins the race at insert time.
    """
    opening_balance_cents = _require_drawer_count(opening_balance_cents, "opening_balance_cents")

    with atomic(session):
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        existing = get_active_shift(session, user.id)
        if existing is not None:
            raise ShiftAlreadyActiveError(
                f"User {user.id} already has an active shift (shift {existing.id})"
            )

        shift = Shift(
            user_id=user.id,
            user_name=user_name or user.name,
            status=SHIFT_ACTIVE,
            start_time=utcnow(),
            opening_balance_cents=opening_balance_cents,
        )
        owner_id = user.id
        session.add(shift)
        try:
            session.flush()
        except IntegrityError:
            # Failed flush leaves the session needing a rollback
            session.rollback()
            raise ShiftAlreadyActiveError(f"User {owner_id} already has an active shift")

    return shift


def end_shift(
    session,
    shift_id: int,
    closing_balance_cents,
    notes: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    variance_threshold_cents: int = VARIANCE_THRESHOLD_CENTS,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Shift:
    """
    Close an active shift and reconcile the drawer.

    expected = opening + cash sales, variance = closing - expected.
    |variance| above the threshold parks the shift in pending_approval,
    otherwise it completes. Sales recorded after close never change the
    frozen totals.
    """
    closing_balance_cents = _require_drawer_count(closing_balance_cents, "closing_balance_cents")
    closed_at = now or utcnow()

    def _op():
        with atomic(session):
            shift = get_shift(session, shift_id, lock=True)
            if shift.status != SHIFT_ACTIVE:
                raise ConflictError(f"Shift {shift_id} is not active (status: {shift.status})")

            summary = calculate_shift_summary(
                session,
                shift.start_time,
                closed_at,
                opening_balance_cents=shift.opening_balance_cents,
            )
            variance = closing_balance_cents - summary.expected_cash_balance

            shift.end_time = closed_at
            shift.closing_balance_cents = closing_balance_cents
            shift.expected_balance_cents = summary.expected_cash_balance
            shift.variance_cents = variance
            shift.total_sales_cents = summary.total_sales
            shift.total_refunds_cents = summary.total_refunds
            shift.total_credit_issued_cents = summary.total_credit_issued
            shift.cash_sales_cents = summary.cash_sales
            shift.eft_sales_cents = summary.eft_sales
            shift.transaction_count = summary.transaction_count
            if notes is not None:
                shift.notes = notes

            if abs(variance) > variance_threshold_cents:
                shift.status = SHIFT_PENDING_APPROVAL
            else:
                shift.status = SHIFT_COMPLETED
            return shift

    return run_with_retry(session, _op, attempts=attempts)


def approve_shift(
    session,
    shift_id: int,
    approver_user_id: int,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Shift:
    """pending_approval -> completed. Any other state is a ConflictError."""

    def _op():
        with atomic(session):
            shift = get_shift(session, shift_id, lock=True)
            if shift.status != SHIFT_PENDING_APPROVAL:
                raise ConflictError(
                    f"Shift {shift_id} is not pending approval (status: {shift.status})"
                )
            approver = session.get(User, approver_user_id)
            if approver is None:
                raise NotFoundError(f"User {approver_user_id} not found")

            shift.status = SHIFT_COMPLETED
            shift.approved_by_user_id = approver.id
            shift.approved_at = utcnow()
            return shift

    return run_with_retry(session, _op, attempts=attempts)


# =============================================================================
# QUERIES
# =============================================================================

def pending_approvals(session) -> list[Shift]:
    """Oldest first, so the longest-waiting drawer is reviewed first."""
    return session.query(Shift).filter_by(
        status=SHIFT_PENDING_APPROVAL
    ).order_by(Shift.start_time.asc(), Shift.id.asc()).all()


def shift_history(
    session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    *,
    user_id: Optional[int] = None,
) -> list[Shift]:
    query = session.query(Shift)
    if start is not None:
        query = query.filter(Shift.start_time >= start)
    if end is not None:
        query = query.filter(Shift.start_time <= end)
    if user_id is not None:
        query = query.filter(Shift.user_id == user_id)
    return query.order_by(Shift.start_time.desc(), Shift.id.desc()).all()
