"""
Authorization tests for salesdesk.

Verifies:
- Unauthenticated requests return 401
- Salesperson role denied administrative operations (403)
- Visitor role is read-only
- Admin role can perform privileged operations
- Per-user GRANT/DENY overrides change effective permissions
"""

import pytest

from salesdesk.models import ActivityLog


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/roles"),
            ("POST", "/api/roles"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/prims/rate"),
            ("GET", "/api/prims/earnings"),
            ("GET", "/api/communications/types"),
            ("POST", "/api/communications/daily"),
            ("GET", "/api/penalties/my-status"),
            ("GET", "/api/announcements"),
            ("GET", "/api/activities"),
            ("GET", "/api/payment-methods"),
            ("GET", "/api/system-settings/sale-types"),
            ("GET", "/api/sales-import/backups"),
            ("GET", "/api/migration/historical-years"),
            ("GET", "/api/reports/dashboard"),
            ("GET", "/api/reports/sales-summary"),
        ],
    )
    def test_requires_auth(self, client, setup_roles, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_invalid_token_rejected(self, client, setup_roles):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid or expired token"


# =============================================================================
# SALESPERSON DENIED ADMINISTRATIVE OPERATIONS: 403
# =============================================================================


class TestSalespersonDenied:
    """Salesperson role cannot perform privileged operations."""

    def test_cannot_list_users(self, client, salesperson_headers):
        resp = client.get("/api/users", headers=salesperson_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "canViewUsers"

    def test_cannot_create_role(self, client, salesperson_headers):
        resp = client.post("/api/roles", json={"name": "auditor"}, headers=salesperson_headers)
        assert resp.status_code == 403

    def test_cannot_set_prim_rate(self, client, salesperson_headers):
        resp = client.post("/api/prims/rate", json={"rate": 2}, headers=salesperson_headers)
        assert resp.status_code == 403

    def test_cannot_import_sales(self, client, salesperson_headers):
        resp = client.get("/api/sales-import/template", headers=salesperson_headers)
        assert resp.status_code == 403

    def test_cannot_view_system_logs(self, client, salesperson_headers):
        resp = client.get("/api/activities/system", headers=salesperson_headers)
        assert resp.status_code == 403

    def test_cannot_delete_sales(self, client, salesperson_headers):
        resp = client.delete("/api/sales/1", headers=salesperson_headers)
        assert resp.status_code == 403

    def test_denial_is_logged(self, client, db_session, salesperson, salesperson_headers):
        client.get("/api/users", headers=salesperson_headers)
        entry = db_session.query(ActivityLog).filter_by(action="permission_denied").first()
        assert entry is not None
        assert entry.user_id == salesperson.id
        assert entry.details["permission"] == "canViewUsers"


class TestVisitorReadOnly:

    def test_can_list_sales(self, client, visitor_headers):
        resp = client.get("/api/sales", headers=visitor_headers)
        assert resp.status_code == 200

    def test_cannot_create_sale(self, client, visitor_headers):
        resp = client.post("/api/sales", json={}, headers=visitor_headers)
        assert resp.status_code == 403

    def test_cannot_enter_communications(self, client, visitor_headers):
        resp = client.post("/api/communications/daily", json={}, headers=visitor_headers)
        assert resp.status_code == 403


# =============================================================================
# ADMIN ALLOWED
# =============================================================================


class TestAdminAllowed:

    def test_can_list_users(self, client, admin_headers):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200

    def test_can_list_roles(self, client, admin_headers):
        resp = client.get("/api/roles", headers=admin_headers)
        assert resp.status_code == 200
        names = {r["name"] for r in resp.json["roles"]}
        assert {"admin", "salesperson", "visitor"} <= names

    def test_can_list_permission_catalog(self, client, admin_headers):
        resp = client.get("/api/roles/permissions/list", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["permissions"]

    def test_admin_holds_every_permission(self, client, admin_headers):
        resp = client.get("/api/auth/me", headers=admin_headers)
        assert "canImportSales" in resp.json["permissions"]
        assert "canManageBackups" in resp.json["permissions"]


# =============================================================================
# PER-USER OVERRIDES
# =============================================================================


class TestPermissionOverrides:

    def test_grant_override_opens_route(self, client, admin_headers, salesperson, salesperson_headers):
        assert client.get("/api/users", headers=salesperson_headers).status_code == 403

        resp = client.put(
            f"/api/users/{salesperson.id}/permissions",
            json={"permissions": {"canViewUsers": True}},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["overrides"] == {"canViewUsers": True}
        assert "canViewUsers" in resp.json["effective_permissions"]

        assert client.get("/api/users", headers=salesperson_headers).status_code == 200

    def test_deny_override_closes_route(self, client, admin_headers, salesperson, salesperson_headers):
        resp = client.put(
            f"/api/users/{salesperson.id}/permissions",
            json={"permissions": {"canViewSales": False}},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert client.get("/api/sales", headers=salesperson_headers).status_code == 403

    def test_null_clears_override(self, client, admin_headers, salesperson, salesperson_headers):
        client.put(
            f"/api/users/{salesperson.id}/permissions",
            json={"permissions": {"canViewSales": False}},
            headers=admin_headers,
        )
        resp = client.put(
            f"/api/users/{salesperson.id}/permissions",
            json={"permissions": {"canViewSales": None}},
            headers=admin_headers,
        )
        assert resp.json["overrides"] == {}
        assert client.get("/api/sales", headers=salesperson_headers).status_code == 200

    def test_unknown_code_rejected(self, client, admin_headers, salesperson):
        resp = client.put(
            f"/api/users/{salesperson.id}/permissions",
            json={"permissions": {"canFly": True}},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_admin_overrides_refused(self, client, admin, admin_headers):
        resp = client.put(
            f"/api/users/{admin.id}/permissions",
            json={"permissions": {"canViewSales": False}},
            headers=admin_headers,
        )
        assert resp.status_code == 400
