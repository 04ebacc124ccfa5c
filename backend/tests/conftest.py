"""
Pytest fixtures for posledger backend tests.

Provides the in-memory database, users with API tokens, catalog factories
and a test client.
"""

import pytest

from posledger import create_app
from posledger.extensions import db
from posledger.models import Customer, Product, User
from posledger.services import stock_family_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username: str, role: str) -> User:
    user = User(
        username=username,
        display_name=username.title(),
        role=role,
        api_token=f"token-{username}",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _make_user(db_session, "manager", "manager")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return _make_user(db_session, "cashier", "cashier")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(admin_user.api_token)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return auth_headers(manager_user.api_token)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    return auth_headers(cashier_user.api_token)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(stock=10, price_cents=300, ...)."""
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        product = Product(
            sku=kwargs.pop("sku", f"SKU-{counter['n']:03d}"),
            name=kwargs.pop("name", f"Product {counter['n']}"),
            price_cents=kwargs.pop("price_cents", 300),
            cost_cents=kwargs.pop("cost_cents", 100),
            stock=kwargs.pop("stock", 10),
            **kwargs,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def cola_family(db_session, make_product):
    """
    Single (1 unit), 6-pack and 24-case sharing a 48-unit pool.

    Returns (family, single, six_pack, case).
    """
    single = make_product(sku="COLA-1", name="Cola Can", stock=48, price_cents=300)
    six_pack = make_product(sku="COLA-6", name="Cola 6-Pack", stock=8, price_cents=1500)
    case = make_product(sku="COLA-24", name="Cola Case", stock=2, price_cents=5400)

    family = stock_family_service.create_family(
        db_session, name="Cola", base_product_id=single.id, total_stock=48,
    )
    stock_family_service.add_member(db_session, family.id, six_pack.id, 6)
    stock_family_service.add_member(db_session, family.id, case.id, 24)
    return family, single, six_pack, case


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(first_name="Dana", last_name="Reyes", email="dana@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer
