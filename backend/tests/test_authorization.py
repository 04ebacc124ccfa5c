"""
Authorization tests for the posledger API.

Verifies:
- Unauthenticated requests return 401
- Cashier role denied back-office operations (403)
- Manager and admin roles can perform privileged operations
- Health endpoint is public
"""

import pytest

from posledger.permissions import DEFAULT_ROLE_PERMISSIONS, get_all_permission_codes, has_permission
from posledger.models import User


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/inventory/products/1/available"),
            ("POST", "/api/inventory/products/1/deduct"),
            ("POST", "/api/inventory/adjustments"),
            ("GET", "/api/inventory/movements"),
            ("GET", "/api/stock-families"),
            ("GET", "/api/bundles"),
            ("POST", "/api/bundles/apply"),
            ("GET", "/api/customers"),
            ("POST", "/api/customers/1/credit"),
            ("POST", "/api/shifts/start"),
            ("GET", "/api/shifts/pending"),
            ("POST", "/api/sales"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_token(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_deactivated_user(self, client, db_session, cashier_user, cashier_headers):
        cashier_user.is_active = False
        db_session.commit()
        resp = client.get("/api/products", headers=cashier_headers)
        assert resp.status_code == 401


# =============================================================================
# CASHIER DENIED BACK-OFFICE OPERATIONS - 403
# =============================================================================


class TestCashierDeniedHighRisk:
    """Cashier role cannot perform privileged operations."""

    def test_cannot_adjust_inventory(self, client, cashier_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/inventory/adjustments",
            json={"product_id": product.id, "adjustment_type": "increase", "quantity": 10, "reason": "x"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "ADJUST_INVENTORY"

    def test_cannot_create_product(self, client, cashier_headers):
        resp = client.post("/api/products", json={"sku": "X", "name": "X"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_manage_families(self, client, cashier_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/stock-families",
            json={"name": "Evil", "base_product_id": product.id},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_manage_bundles(self, client, cashier_headers):
        resp = client.post(
            "/api/bundles",
            json={"name": "Free", "minimum_quantity": 1, "bundle_price_cents": 0},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_issue_credit(self, client, cashier_headers, customer):
        resp = client.post(
            f"/api/customers/{customer.id}/credit",
            json={"amount_cents": 100000, "description": "gift"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_approve_shift(self, client, cashier_headers):
        resp = client.post("/api/shifts/1/approve", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_view_sales_history(self, client, cashier_headers):
        resp = client.get("/api/sales", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_end_someone_elses_shift(self, client, db_session, cashier_headers, manager_user):
        from posledger.services import shift_service

        shift = shift_service.start_shift(db_session, manager_user.id, 10000)
        resp = client.post(
            f"/api/shifts/{shift.id}/end",
            json={"closing_balance_cents": 10000},
            headers=cashier_headers,
        )
        assert resp.status_code == 403


# =============================================================================
# PRIVILEGED ROLES - 200
# =============================================================================


class TestPrivilegedAccess:

    def test_manager_can_adjust_inventory(self, client, manager_headers, make_product):
        product = make_product(stock=1)
        resp = client.post(
            "/api/inventory/adjustments",
            json={"product_id": product.id, "adjustment_type": "increase", "quantity": 4, "reason": "delivery"},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["available_stock"] == 5

    def test_admin_can_view_sales(self, client, admin_headers):
        resp = client.get("/api/sales", headers=admin_headers)
        assert resp.status_code == 200

    def test_manager_can_view_pending(self, client, manager_headers):
        resp = client.get("/api/shifts/pending", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["items"] == []


# =============================================================================
# ROLE TABLE
# =============================================================================


class TestRolePermissions:

    def test_admin_holds_every_permission(self):
        assert DEFAULT_ROLE_PERMISSIONS["admin"] == set(get_all_permission_codes())

    def test_manager_is_superset_of_cashier(self):
        assert DEFAULT_ROLE_PERMISSIONS["cashier"] < DEFAULT_ROLE_PERMISSIONS["manager"]

    def test_inactive_user_has_nothing(self):
        user = User(username="ghost", role="admin", is_active=False)
        assert not has_permission(user, "VIEW_INVENTORY")
        assert not has_permission(None, "VIEW_INVENTORY")


# =============================================================================
# PUBLIC ENDPOINTS - NO AUTH REQUIRED
# =============================================================================


class TestPublicEndpoints:
    """System health is public."""

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"
