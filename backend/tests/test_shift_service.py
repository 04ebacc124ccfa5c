"""
Shift reconciliation tests.

Verifies:
- One active shift per user
- Variance math and the approval threshold
- Summary frozen at close
- Approval transitions
"""

from datetime import timedelta

import pytest

from posledger.models import Sale, Shift, SHIFT_ACTIVE, SHIFT_COMPLETED, SHIFT_PENDING_APPROVAL
from posledger.services import customer_service, shift_service
from posledger.time_utils import utcnow
from posledger.validation import (
    ConflictError,
    NotFoundError,
    ShiftAlreadyActiveError,
    ValidationError,
)


def _sale(db_session, user, total, method="cash", *, cash=None, eft=None, at=None, status="completed"):
    sale = Sale(
        status=status,
        subtotal_cents=total,
        total_cents=total,
        payment_method=method,
        cash_amount_cents=cash,
        eft_amount_cents=eft,
        user_id=user.id,
        created_at=at or utcnow(),
    )
    db_session.add(sale)
    db_session.commit()
    return sale


class TestStartShift:

    def test_start(self, db_session, cashier_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        assert shift.status == SHIFT_ACTIVE
        assert shift.opening_balance_cents == 10000
        assert shift.user_name == "Cashier"
        assert shift_service.get_active_shift(db_session, cashier_user.id).id == shift.id

    def test_second_active_shift_rejected(self, db_session, cashier_user):
        shift_service.start_shift(db_session, cashier_user.id, 10000)
        with pytest.raises(ShiftAlreadyActiveError):
            shift_service.start_shift(db_session, cashier_user.id, 5000)
        assert db_session.query(Shift).count() == 1

    def test_other_users_are_independent(self, db_session, cashier_user, manager_user):
        shift_service.start_shift(db_session, cashier_user.id, 10000)
        shift_service.start_shift(db_session, manager_user.id, 10000)
        assert db_session.query(Shift).filter_by(status=SHIFT_ACTIVE).count() == 2

    def test_unique_index_backs_the_check(self, db_session, cashier_user, monkeypatch):
        shift_service.start_shift(db_session, cashier_user.id, 10000)
        # Simulate a racing start that passed the up-front check
        monkeypatch.setattr(shift_service, "get_active_shift", lambda session, user_id: None)

        with pytest.raises(ShiftAlreadyActiveError):
            shift_service.start_shift(db_session, cashier_user.id, 10000)
        assert db_session.query(Shift).count() == 1

    @pytest.mark.parametrize("opening", [0, -100, "abc", 10.5])
    def test_invalid_opening_balance(self, db_session, cashier_user, opening):
        with pytest.raises(ValidationError):
            shift_service.start_shift(db_session, cashier_user.id, opening)

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            shift_service.start_shift(db_session, 9999, 10000)

    def test_new_shift_after_close(self, db_session, cashier_user):
        first = shift_service.start_shift(db_session, cashier_user.id, 10000)
        shift_service.end_shift(db_session, first.id, 10000)
        second = shift_service.start_shift(db_session, cashier_user.id, 10000)
        assert second.id != first.id


class TestEndShift:

    def test_balanced_drawer_completes(self, db_session, cashier_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        _sale(db_session, cashier_user, 25000, "cash")

        shift = shift_service.end_shift(db_session, shift.id, 35000)

        assert shift.status == SHIFT_COMPLETED
        assert shift.expected_balance_cents == 35000
        assert shift.variance_cents == 0
        assert shift.cash_sales_cents == 25000
        assert shift.transaction_count == 1
        assert shift.end_time is not None

    def test_large_variance_needs_approval(self, db_session, cashier_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        _sale(db_session, cashier_user, 25000, "cash")

        shift = shift_service.end_shift(db_session, shift.id, 36200)

        assert shift.status == SHIFT_PENDING_APPROVAL
        assert shift.variance_cents == 1200

    @pytest.mark.parametrize("closing,status", [
        (36000, SHIFT_COMPLETED),
        (34000, SHIFT_COMPLETED),
        (36001, SHIFT_PENDING_APPROVAL),
        (33999, SHIFT_PENDING_APPROVAL),
    ])
    def test_threshold_is_exclusive(self, db_session, cashier_user, closing, status):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        _sale(db_session, cashier_user, 25000, "cash")
        assert shift_service.end_shift(db_session, shift.id, closing).status == status

    def test_summary_buckets(self, db_session, cashier_user, customer):
        shift = shift_service.start_shift(db_session, cashier_user.id, 5000)
        _sale(db_session, cashier_user, 1000, "cash")
        _sale(db_session, cashier_user, 2000, "eft")
        _sale(db_session, cashier_user, 3000, "split", cash=1000, eft=2000)
        _sale(db_session, cashier_user, 400, "credit")
        _sale(db_session, cashier_user, -700, "cash")
        _sale(db_session, cashier_user, 9999, "cash", status="voided")
        customer_service.adjust_balance(db_session, customer.id, 250, "store credit for return")

        shift = shift_service.end_shift(db_session, shift.id, 7000)

        assert shift.total_sales_cents == 6400
        assert shift.total_refunds_cents == 700
        assert shift.cash_sales_cents == 2000
        assert shift.eft_sales_cents == 4000
        assert shift.total_credit_issued_cents == 250
        assert shift.transaction_count == 5
        assert shift.expected_balance_cents == 7000
        assert shift.variance_cents == 0

    def test_sales_outside_window_are_ignored(self, db_session, cashier_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        _sale(db_session, cashier_user, 5000, "cash", at=shift.start_time - timedelta(minutes=5))

        close_at = utcnow()
        _sale(db_session, cashier_user, 5000, "cash", at=close_at + timedelta(minutes=5))
        shift = shift_service.end_shift(db_session, shift.id, 10000, now=close_at)

        assert shift.cash_sales_cents == 0
        assert shift.status == SHIFT_COMPLETED

    def test_totals_frozen_after_close(self, db_session, cashier_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        _sale(db_session, cashier_user, 2500, "cash")
        shift = shift_service.end_shift(db_session, shift.id, 12500)

        _sale(db_session, cashier_user, 9000, "cash")

        refreshed = shift_service.get_shift(db_session, shift.id)
        assert refreshed.cash_sales_cents == 2500
        assert refreshed.total_sales_cents == 2500

    def test_end_twice_rejected(self, db_session, cashier_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        shift_service.end_shift(db_session, shift.id, 10000)
        with pytest.raises(ConflictError):
            shift_service.end_shift(db_session, shift.id, 10000)

    @pytest.mark.parametrize("closing", [0, -1])
    def test_empty_or_negative_closing_rejected(self, db_session, cashier_user, closing):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        with pytest.raises(ValidationError):
            shift_service.end_shift(db_session, shift.id, closing)
        assert shift_service.get_shift(db_session, shift.id).status == SHIFT_ACTIVE

    def test_unknown_shift(self, db_session):
        with pytest.raises(NotFoundError):
            shift_service.end_shift(db_session, 9999, 100)

    def test_custom_threshold(self, db_session, cashier_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        shift = shift_service.end_shift(db_session, shift.id, 10500, variance_threshold_cents=100)
        assert shift.status == SHIFT_PENDING_APPROVAL


class TestApproval:

    def _pending(self, db_session, user):
        shift = shift_service.start_shift(db_session, user.id, 10000)
        return shift_service.end_shift(db_session, shift.id, 20000)

    def test_approve_pending(self, db_session, cashier_user, manager_user):
        shift = self._pending(db_session, cashier_user)
        assert [s.id for s in shift_service.pending_approvals(db_session)] == [shift.id]

        shift = shift_service.approve_shift(db_session, shift.id, manager_user.id)

        assert shift.status == SHIFT_COMPLETED
        assert shift.approved_by_user_id == manager_user.id
        assert shift.approved_at is not None
        assert shift_service.pending_approvals(db_session) == []

    def test_approve_completed_rejected(self, db_session, cashier_user, manager_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        shift_service.end_shift(db_session, shift.id, 10000)
        with pytest.raises(ConflictError):
            shift_service.approve_shift(db_session, shift.id, manager_user.id)

    def test_approve_active_rejected(self, db_session, cashier_user, manager_user):
        shift = shift_service.start_shift(db_session, cashier_user.id, 10000)
        with pytest.raises(ConflictError):
            shift_service.approve_shift(db_session, shift.id, manager_user.id)


class TestHistory:

    def test_history_newest_first(self, db_session, cashier_user, manager_user):
        first = shift_service.start_shift(db_session, cashier_user.id, 10000)
        second = shift_service.start_shift(db_session, manager_user.id, 10000)

        assert [s.id for s in shift_service.shift_history(db_session)] == [second.id, first.id]
        assert [s.id for s in shift_service.shift_history(db_session, user_id=cashier_user.id)] == [first.id]

    def test_history_window(self, db_session, cashier_user):
        shift_service.start_shift(db_session, cashier_user.id, 10000)
        later = utcnow() + timedelta(hours=1)
        assert shift_service.shift_history(db_session, start=later) == []


class TestSummary:

    def test_summary_to_dict(self, db_session, cashier_user):
        start = utcnow() - timedelta(minutes=1)
        _sale(db_session, cashier_user, 1200, "cash")
        summary = shift_service.calculate_shift_summary(db_session, start, utcnow(), opening_balance_cents=500)

        data = summary.to_dict()
        assert data["cash_sales_cents"] == 1200
        assert data["expected_cash_balance_cents"] == 1700
        assert data["transaction_count"] == 1
