"""
CLI command tests (flask system / users / reports / shifts).
"""

from posledger.models import Product, StockFamily, User


class TestSystemCommands:

    def test_seed_demo_runs_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "seed-demo"])
        assert result.exit_code == 0
        assert "Demo data loaded" in result.output
        assert db_session.query(User).count() == 3
        assert db_session.query(Product).count() == 3
        assert db_session.query(StockFamily).count() == 1

        result = runner.invoke(args=["system", "seed-demo"])
        assert "already present" in result.output
        assert db_session.query(User).count() == 3


class TestUserCommands:

    def test_create_prints_token(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "create", "--username", "alice", "--role", "manager"])

        assert result.exit_code == 0
        user = db_session.query(User).filter_by(username="alice").one()
        assert user.api_token in result.output
        assert user.role == "manager"

    def test_duplicate_username(self, app, db_session, cashier_user):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "create", "--username", "cashier"])
        assert result.exit_code != 0
        assert "already exists" in result.output


class TestReportCommands:

    def test_low_stock(self, app, db_session, make_product):
        make_product(sku="LOW-1", name="Nearly Gone", stock=1)
        result = app.test_cli_runner().invoke(args=["reports", "low-stock", "--threshold", "2"])
        assert "Nearly Gone" in result.output

    def test_stock_value(self, app, db_session, make_product):
        make_product(stock=10, price_cents=300, cost_cents=100)
        result = app.test_cli_runner().invoke(args=["reports", "stock-value"])
        assert "Stock value: 30.00" in result.output

    def test_no_pending_shifts(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["shifts", "pending"])
        assert "No shifts pending approval." in result.output
