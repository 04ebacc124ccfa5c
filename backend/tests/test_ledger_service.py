"""
Movement ledger tests.

Verifies:
- Balanced entries only (new = previous + quantity)
- Newest-first reads
- Replay reconstructs displayed stock
- Append-only enforcement
"""

from datetime import timedelta

import pytest

from posledger.models import InventoryMovement
from posledger.models.immutability import ImmutableRecordError
from posledger.services import ledger_service
from posledger.services.inventory_service import adjust_stock
from posledger.services.stock_family_service import deduct_stock
from posledger.time_utils import utcnow
from posledger.validation import ValidationError


class TestRecordMovement:

    def test_rejects_unbalanced_entry(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                db_session,
                product_id=product.id,
                movement_type="adjustment",
                quantity=-3,
                previous_stock=10,
                new_stock=8,
                user_id=admin_user.id,
            )

    def test_rejects_unknown_type(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                db_session,
                product_id=product.id,
                movement_type="teleport",
                quantity=1,
                previous_stock=10,
                new_stock=11,
                user_id=admin_user.id,
            )

    def test_requires_user(self, db_session, make_product):
        product = make_product(stock=10)
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                db_session,
                product_id=product.id,
                movement_type="sale",
                quantity=-1,
                previous_stock=10,
                new_stock=9,
                user_id=None,
            )

    def test_reference_id_is_stored_as_text(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        movement = ledger_service.record_movement(
            db_session,
            product_id=product.id,
            movement_type="sale",
            quantity=-1,
            previous_stock=10,
            new_stock=9,
            user_id=admin_user.id,
            reference_id=42,
        )
        db_session.commit()
        assert movement.reference_id == "42"


class TestLedgerReads:

    def test_newest_first(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        deduct_stock(db_session, product.id, 1, user_id=admin_user.id)
        deduct_stock(db_session, product.id, 2, user_id=admin_user.id)
        adjust_stock(db_session, product.id, "increase", 5, "delivery", admin_user.id)

        movements = ledger_service.list_product_movements(db_session, product.id)
        assert [m.movement_type for m in movements] == ["adjustment", "sale", "sale"]
        assert [m.quantity for m in movements] == [5, -2, -1]

    def test_limit(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        for _ in range(4):
            deduct_stock(db_session, product.id, 1, user_id=admin_user.id)
        assert len(ledger_service.list_product_movements(db_session, product.id, limit=2)) == 2

    def test_window_filter(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        deduct_stock(db_session, product.id, 1, user_id=admin_user.id)

        future = utcnow() + timedelta(hours=1)
        assert ledger_service.list_movements(db_session, start=future) == []
        assert len(ledger_service.list_movements(db_session, end=future)) == 1

    def test_list_adjustments(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        adjust_stock(db_session, product.id, "set", 3, "recount", admin_user.id)
        adjustments = ledger_service.list_adjustments(db_session)
        assert len(adjustments) == 1
        assert adjustments[0].reason == "recount"


class TestReplay:

    def test_replay_matches_displayed_stock(self, db_session, make_product, admin_user):
        product = make_product(stock=20)
        deduct_stock(db_session, product.id, 3, user_id=admin_user.id)
        adjust_stock(db_session, product.id, "decrease", 50, "damaged pallet", admin_user.id)
        adjust_stock(db_session, product.id, "increase", 7, "delivery", admin_user.id)
        deduct_stock(db_session, product.id, 2, user_id=admin_user.id)

        movements = list(reversed(ledger_service.list_product_movements(db_session, product.id)))
        assert ledger_service.replay_stock(movements) == product.stock == 5

    def test_replay_empty(self):
        assert ledger_service.replay_stock([]) is None

    def test_replay_detects_gap(self):
        first = InventoryMovement(id=1, quantity=-1, previous_stock=10, new_stock=9)
        second = InventoryMovement(id=2, quantity=-1, previous_stock=7, new_stock=6)
        with pytest.raises(ValueError):
            ledger_service.replay_stock([first, second])


class TestAppendOnly:

    def test_movement_cannot_be_edited(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        movement = deduct_stock(db_session, product.id, 1, user_id=admin_user.id)

        movement.reason = "rewritten"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_movement_cannot_be_deleted(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        movement = deduct_stock(db_session, product.id, 1, user_id=admin_user.id)

        db_session.delete(movement)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()
