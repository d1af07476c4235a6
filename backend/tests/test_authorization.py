"""
Authorization tests.

Verifies:
- Protected endpoints return 401 without a signed-in user
- Each client is signed in only through its own bearer token
- Employees are denied admin-only operations (403)
- Returns are limited to admin and employee_return
- Admin can perform privileged operations
"""

import pytest

from conftest import login, make_product


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a session."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/users"),
            ("GET", "/api/pos/cart"),
            ("POST", "/api/pos/checkout"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales/sale_1/return"),
            ("GET", "/api/sales/report/daily"),
            ("PATCH", "/api/settings"),
            ("GET", "/api/backup"),
            ("POST", "/api/backup/restore"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "NOT_AUTHENTICATED"

    def test_settings_readable_without_session(self, client):
        resp = client.get("/api/settings")
        assert resp.status_code == 200
        assert resp.get_json()["storeName"] == "Lahemir"

    def test_health(self, client):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        assert resp.get_json()["database"] == "ok"


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:

    def test_login_and_me(self, client):
        resp = login(client)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["username"] == "abdo"
        assert "password" not in body["user"]
        assert body["notification"]["variant"] == "default"

        me = client.get("/api/auth/me").get_json()
        assert me["user"]["role"] == "admin"

    def test_wrong_password(self, client):
        resp = login(client, password="nope")
        assert resp.status_code == 401
        body = resp.get_json()
        assert body["code"] == "INVALID_CREDENTIALS"
        assert body["notification"]["variant"] == "destructive"

    def test_logout(self, admin_client):
        assert admin_client.post("/api/auth/logout").status_code == 200
        assert admin_client.get("/api/auth/me").status_code == 401

    def test_sign_in_does_not_leak_to_other_clients(self, app, admin_client):
        other = app.test_client()

        resp = other.get("/api/users")
        assert resp.status_code == 401
        assert other.get("/api/auth/me").status_code == 401
        assert admin_client.get("/api/users").status_code == 200

    def test_each_client_keeps_its_own_user(self, app, admin_client, employee):
        other = app.test_client()
        assert login(other, "sara", "pw-sara").status_code == 200

        assert admin_client.get("/api/auth/me").get_json()["user"]["username"] == "abdo"
        assert other.get("/api/auth/me").get_json()["user"]["username"] == "sara"
        assert other.get("/api/users").status_code == 403

        assert other.post("/api/auth/logout").status_code == 200
        assert admin_client.get("/api/users").status_code == 200

    def test_forged_token_rejected(self, client):
        client.environ_base["HTTP_AUTHORIZATION"] = "Bearer " + "0" * 64
        assert client.get("/api/auth/me").status_code == 401


# =============================================================================
# EMPLOYEE DENIED ADMIN OPERATIONS - 403
# =============================================================================


class TestEmployeeDenied:

    @pytest.fixture
    def employee_client(self, client, employee):
        assert login(client, "sara", "pw-sara").status_code == 200
        return client

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("PUT", "/api/products/prod_1"),
            ("DELETE", "/api/products/prod_1"),
            ("POST", "/api/products/prod_1/adjust"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("PATCH", "/api/settings"),
            ("POST", "/api/settings/reset"),
            ("GET", "/api/backup"),
            ("POST", "/api/backup/restore"),
            ("POST", "/api/sales/sale_1/return"),
            ("POST", "/api/sales/sale_1/return-items"),
        ],
    )
    def test_forbidden(self, employee_client, method, path):
        resp = getattr(employee_client, method.lower())(path, json={})
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "PERMISSION_DENIED"

    def test_employee_can_sell(self, services, employee_client):
        widget = make_product(services, quantity=2)

        assert employee_client.get("/api/products").status_code == 200
        assert employee_client.post("/api/pos/cart/items", json={"productId": widget.id}).status_code == 200
        resp = employee_client.post("/api/pos/checkout", json={})
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["sellerUsername"] == "sara"


class TestReturnsRole:

    def test_employee_return_can_return(self, services, client, admin, returns_clerk):
        widget = make_product(services, quantity=2)
        sale = services.sales.record_sale([(widget.id, 1)], 0, admin).sale

        assert login(client, "omar", "pw-omar").status_code == 200
        resp = client.post(f"/api/sales/{sale.id}/return")

        assert resp.status_code == 200
        assert resp.get_json()["sale"]["status"] == "returned"
        assert services.products.get_by_id(widget.id).quantity == 2

    def test_demoted_user_loses_access_immediately(self, services, client, returns_clerk):
        assert login(client, "omar", "pw-omar").status_code == 200
        services.users.update(returns_clerk.id, {"role": "employee"})

        resp = client.post("/api/sales/sale_1/return")
        assert resp.status_code == 403


# =============================================================================
# ADMIN CAN PERFORM PRIVILEGED OPERATIONS
# =============================================================================


class TestAdminAllowed:

    def test_user_management(self, admin_client):
        resp = admin_client.post("/api/users", json={"username": "new", "password": "pw", "role": "employee"})
        assert resp.status_code == 201
        user = resp.get_json()
        assert "password" not in user

        listing = admin_client.get("/api/users").get_json()
        assert listing["count"] == 2
        assert all("password" not in u for u in listing["items"])

        resp = admin_client.put(f"/api/users/{user['id']}", json={"role": "employee_return"})
        assert resp.status_code == 200
        assert resp.get_json()["role"] == "employee_return"

        assert admin_client.delete(f"/api/users/{user['id']}").status_code == 200

    def test_default_admin_cannot_be_deleted(self, admin_client, admin):
        resp = admin_client.delete(f"/api/users/{admin.id}")
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "DEFAULT_ADMIN_PROTECTION"

    def test_other_admin_cannot_edit_default_admin(self, client, admin, second_admin):
        assert login(client, "mona", "pw-mona").status_code == 200
        resp = client.put(f"/api/users/{admin.id}", json={"password": "hijack"})
        assert resp.status_code == 403

    def test_settings_update(self, admin_client):
        resp = admin_client.patch("/api/settings", json={"storeName": "Abaya House"})
        assert resp.status_code == 200
        assert resp.get_json()["storeName"] == "Abaya House"

        resp = admin_client.patch("/api/settings", json={"themeColors": {"primary": "red"}})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"
