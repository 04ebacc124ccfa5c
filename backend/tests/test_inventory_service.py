"""
Stock adjustment and report tests.
"""

import pytest

from posledger.models import InventoryMovement, Product, StockAdjustment
from posledger.services import inventory_service
from posledger.services.stock_family_service import available_stock
from posledger.validation import NotFoundError, ValidationError


class TestAdjustStock:

    def test_increase(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        adjustment = inventory_service.adjust_stock(
            db_session, product.id, "increase", 5, "delivery", admin_user.id,
        )

        assert product.stock == 15
        movement = db_session.query(InventoryMovement).one()
        assert movement.movement_type == "adjustment"
        assert movement.reference_id == str(adjustment.id)
        assert (movement.previous_stock, movement.quantity, movement.new_stock) == (10, 5, 15)

    def test_decrease_clamps_at_zero(self, db_session, make_product, admin_user):
        product = make_product(stock=3)
        inventory_service.adjust_stock(db_session, product.id, "decrease", 5, "breakage", admin_user.id)

        assert product.stock == 0
        movement = db_session.query(InventoryMovement).one()
        assert movement.quantity == -3
        assert movement.new_stock == 0

    def test_set(self, db_session, make_product, admin_user):
        product = make_product(stock=9)
        inventory_service.adjust_stock(db_session, product.id, "set", 4, "stock take", admin_user.id)
        assert product.stock == 4

    def test_blank_reason_writes_nothing(self, db_session, make_product, admin_user):
        product = make_product(stock=10)
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(db_session, product.id, "increase", 5, "   ", admin_user.id)

        db_session.refresh(product)
        assert product.stock == 10
        assert db_session.query(StockAdjustment).count() == 0
        assert db_session.query(InventoryMovement).count() == 0

    def test_unknown_type(self, db_session, make_product, admin_user):
        product = make_product()
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(db_session, product.id, "double", 5, "x", admin_user.id)

    def test_negative_quantity(self, db_session, make_product, admin_user):
        product = make_product()
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(db_session, product.id, "increase", -1, "x", admin_user.id)

    def test_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(db_session, 9999, "increase", 1, "x", admin_user.id)

    def test_adjustment_propagates_to_family(self, db_session, cola_family, admin_user):
        family, single, six_pack, _ = cola_family
        inventory_service.adjust_stock(db_session, six_pack.id, "increase", 2, "found two packs", admin_user.id)

        db_session.refresh(family)
        assert family.total_stock == 60
        assert available_stock(db_session, single.id) == 60

    def test_failure_mid_operation_rolls_everything_back(self, db_session, make_product, admin_user, monkeypatch):
        product = make_product(stock=10)

        def boom(*args, **kwargs):
            raise ValidationError("ledger unavailable")

        monkeypatch.setattr(inventory_service, "record_movement", boom)

        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(db_session, product.id, "increase", 5, "delivery", admin_user.id)

        assert db_session.get(Product, product.id).stock == 10
        assert db_session.query(StockAdjustment).count() == 0
        assert db_session.query(InventoryMovement).count() == 0


class TestRecordSaleMovement:

    def test_records_already_decremented_stock(self, db_session, make_product, admin_user):
        product = make_product(stock=7)
        movement = inventory_service.record_sale_movement(db_session, product.id, 3, "S-9", admin_user.id)

        assert (movement.previous_stock, movement.quantity, movement.new_stock) == (10, -3, 7)
        assert movement.reference_id == "S-9"

    def test_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            inventory_service.record_sale_movement(db_session, 9999, 1, "S-1", admin_user.id)


class TestReports:

    def test_low_stock_includes_threshold(self, db_session, make_product):
        at = make_product(name="At", stock=5)
        below = make_product(name="Below", stock=1)
        make_product(name="Above", stock=6)
        make_product(name="Inactive", stock=0, is_active=False)

        rows = inventory_service.low_stock_report(db_session, 5)
        assert [r["id"] for r in rows] == [below.id, at.id]
        assert rows[0]["available_stock"] == 1

    def test_low_stock_reports_family_availability(self, db_session, cola_family):
        _, _, _, case = cola_family
        rows = inventory_service.low_stock_report(db_session, 5)
        case_row = next(r for r in rows if r["id"] == case.id)
        assert case_row["available_stock"] == 2

    def test_stock_value(self, db_session, make_product):
        make_product(category="Drinks", stock=10, price_cents=300, cost_cents=100)
        make_product(category="Drinks", stock=2, price_cents=1000, cost_cents=400)
        make_product(category=None, stock=1, price_cents=50, cost_cents=10)

        report = inventory_service.stock_value_report(db_session)
        assert report["total_products"] == 3
        assert report["total_stock_value_cents"] == 3000 + 2000 + 50
        assert report["total_cost_value_cents"] == 1000 + 800 + 10
        assert report["categories"]["Drinks"] == {"count": 12, "value_cents": 5000, "cost_cents": 1800}
        assert report["categories"]["Uncategorized"]["count"] == 1
