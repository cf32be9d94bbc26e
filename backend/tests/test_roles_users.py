"""
Role management and user administration routes.
"""

from salesdesk.models import Role


class TestRoles:

    def test_create_role_with_permissions(self, client, admin_headers):
        resp = client.post(
            "/api/roles",
            json={
                "name": "Auditor",
                "display_name": "Denetçi",
                "permissions": {"canViewSales": True, "canViewAllSales": True, "canDeleteSales": False},
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        role = resp.json["role"]
        assert role["name"] == "auditor"
        assert role["permissions"]["canViewAllSales"] is True
        assert role["permissions"]["canDeleteSales"] is False
        assert role["user_count"] == 0

    def test_duplicate_name_rejected(self, client, admin_headers):
        resp = client.post("/api/roles", json={"name": "SalesPerson"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_permission_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/roles",
            json={"name": "broken", "permissions": {"canTimeTravel": True}},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_admin_role_cannot_be_edited(self, client, db_session, admin_headers):
        admin_role = db_session.query(Role).filter_by(name="admin").one()
        resp = client.put(f"/api/roles/{admin_role.id}", json={"display_name": "Boss"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_system_roles_cannot_be_deleted(self, client, db_session, admin_headers):
        role = db_session.query(Role).filter_by(name="visitor").one()
        resp = client.delete(f"/api/roles/{role.id}", headers=admin_headers)
        assert resp.status_code == 400

    def test_role_in_use_cannot_be_deleted(self, client, admin_headers, make_user):
        role_id = client.post("/api/roles", json={"name": "temp"}, headers=admin_headers).json["role"]["id"]
        make_user(role_id=role_id)
        resp = client.delete(f"/api/roles/{role_id}", headers=admin_headers)
        assert resp.status_code == 400
        assert "assigned" in resp.json["message"]

    def test_delete_unused_custom_role(self, client, admin_headers):
        role_id = client.post("/api/roles", json={"name": "temp"}, headers=admin_headers).json["role"]["id"]
        assert client.delete(f"/api/roles/{role_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/roles/{role_id}", headers=admin_headers).status_code == 404

    def test_toggle_status(self, client, db_session, admin_headers):
        role = db_session.query(Role).filter_by(name="visitor").one()
        resp = client.post(f"/api/roles/{role.id}/toggle-status", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["role"]["is_active"] is False

    def test_admin_role_cannot_be_deactivated(self, client, db_session, admin_headers):
        role = db_session.query(Role).filter_by(name="admin").one()
        resp = client.post(f"/api/roles/{role.id}/toggle-status", headers=admin_headers)
        assert resp.status_code == 400

    def test_inactive_role_grants_nothing(self, client, db_session, admin_headers, visitor_headers):
        role = db_session.query(Role).filter_by(name="visitor").one()
        client.post(f"/api/roles/{role.id}/toggle-status", headers=admin_headers)
        assert client.get("/api/sales", headers=visitor_headers).status_code == 403


class TestUsers:

    def test_create_user(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={
                "first_name": "Zeynep",
                "last_name": "Demir",
                "email": "zeynep@example.com",
                "password": "secret123",
                "role": "visitor",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["user"]["role"]["name"] == "visitor"
        assert resp.json["user"]["is_approved"] is True

    def test_create_virtual_user_without_password(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"first_name": "Eski", "last_name": "Temsilci", "email": "eski@example.com", "is_virtual": True},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["user"]["is_virtual"] is True
        assert resp.json["user"]["requires_communication_entry"] is False

    def test_salespeople_excludes_admins(self, client, admin_headers, salesperson, visitor):
        resp = client.get("/api/users/salespeople", headers=admin_headers)
        assert resp.status_code == 200
        ids = {p["id"] for p in resp.json["salespeople"]}
        assert salesperson.id in ids
        assert visitor.id in ids
        assert all(p["role"] != "admin" for p in resp.json["salespeople"])

    def test_change_role(self, client, db_session, admin_headers, salesperson):
        visitor_role = db_session.query(Role).filter_by(name="visitor").one()
        resp = client.put(
            f"/api/users/{salesperson.id}/role", json={"role_id": visitor_role.id}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json["user"]["role"]["name"] == "visitor"

    def test_cannot_change_own_role(self, client, db_session, admin, admin_headers):
        visitor_role = db_session.query(Role).filter_by(name="visitor").one()
        resp = client.put(f"/api/users/{admin.id}/role", json={"role_id": visitor_role.id}, headers=admin_headers)
        assert resp.status_code == 403

    def test_cannot_deactivate_self(self, client, admin, admin_headers):
        resp = client.put(f"/api/users/{admin.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 403

    def test_update_unknown_user(self, client, admin_headers):
        resp = client.put("/api/users/9999", json={"first_name": "X"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_communication_exemption(self, client, admin_headers, salesperson):
        resp = client.put(
            f"/api/users/{salesperson.id}/communication-requirement",
            json={"requires_communication_entry": False, "reason": "Saha çalışması"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["user"]["requires_communication_entry"] is False
        assert resp.json["user"]["communication_exemption_reason"] == "Saha çalışması"

    def test_communication_requirement_must_be_boolean(self, client, admin_headers, salesperson):
        resp = client.put(
            f"/api/users/{salesperson.id}/communication-requirement",
            json={"requires_communication_entry": "no"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_all_users_include_permissions(self, client, admin_headers, salesperson):
        resp = client.get("/api/users/all-users", headers=admin_headers)
        assert resp.status_code == 200
        row = next(u for u in resp.json["users"] if u["id"] == salesperson.id)
        assert "canCreateSales" in row["permissions"]
