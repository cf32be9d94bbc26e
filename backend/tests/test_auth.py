"""
Authentication tests: registration, approval flow, login, sessions and profile.
"""

from salesdesk.services import session_service
from conftest import PASSWORD, get_auth_token


def _register(client, email, first_name="Ali", last_name="Veli", password=PASSWORD):
    return client.post("/api/auth/register", json={
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "password": password,
    })


class TestRegistration:

    def test_first_user_becomes_admin(self, client, setup_roles):
        resp = _register(client, "first@example.com")
        assert resp.status_code == 201
        assert resp.json["token"]
        assert resp.json["user"]["role"]["name"] == "admin"
        assert resp.json["user"]["is_approved"] is True

    def test_later_users_wait_for_approval(self, client, admin):
        resp = _register(client, "second@example.com")
        assert resp.status_code == 201
        assert resp.json["requires_approval"] is True
        assert "token" not in resp.json
        assert resp.json["user"]["is_active"] is False

        login = client.post("/api/auth/login", json={"email": "second@example.com", "password": PASSWORD})
        assert login.status_code == 401
        assert "approval" in login.json["message"]

    def test_duplicate_email_rejected(self, client, admin):
        resp = _register(client, "ADMIN@example.com")
        assert resp.status_code == 400

    def test_short_password_rejected(self, client, setup_roles):
        resp = _register(client, "weak@example.com", password="123")
        assert resp.status_code == 400

    def test_missing_names_rejected(self, client, setup_roles):
        resp = _register(client, "noname@example.com", first_name="")
        assert resp.status_code == 400

    def test_approval_enables_login(self, client, admin, admin_headers):
        user_id = _register(client, "pending@example.com").json["user"]["id"]

        pending = client.get("/api/users/pending", headers=admin_headers)
        assert [u["id"] for u in pending.json["users"]] == [user_id]

        resp = client.put(f"/api/users/{user_id}/approve", json={}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["is_active"] is True

        assert get_auth_token(client, "pending@example.com", PASSWORD)

    def test_reject_deletes_pending_user(self, client, admin, admin_headers):
        user_id = _register(client, "nope@example.com").json["user"]["id"]
        resp = client.delete(f"/api/users/{user_id}/reject", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/users/pending", headers=admin_headers).json["count"] == 0


class TestLogin:

    def test_login_returns_token_and_permissions(self, client, salesperson):
        resp = client.post("/api/auth/login", json={"email": salesperson.email, "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["token"]
        assert "canCreateSales" in resp.json["permissions"]
        assert "canViewUsers" not in resp.json["permissions"]

    def test_email_is_case_insensitive(self, client, salesperson):
        resp = client.post("/api/auth/login", json={"email": "SELIN@Example.com", "password": PASSWORD})
        assert resp.status_code == 200

    def test_wrong_password(self, client, salesperson):
        resp = client.post("/api/auth/login", json={"email": salesperson.email, "password": "wrong-pass"})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid credentials"

    def test_missing_fields(self, client, setup_roles):
        resp = client.post("/api/auth/login", json={"email": "x@example.com"})
        assert resp.status_code == 400

    def test_virtual_user_cannot_log_in(self, client, make_user):
        virtual = make_user(is_virtual=True)
        resp = client.post("/api/auth/login", json={"email": virtual.email, "password": PASSWORD})
        assert resp.status_code == 401


class TestSessions:

    def test_me(self, client, salesperson, salesperson_headers):
        resp = client.get("/api/auth/me", headers=salesperson_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == salesperson.id

    def test_logout_revokes_token(self, client, salesperson_headers):
        assert client.post("/api/auth/logout", headers=salesperson_headers).status_code == 200
        assert client.get("/api/auth/me", headers=salesperson_headers).status_code == 401

    def test_deactivation_revokes_sessions(self, client, admin_headers, salesperson, salesperson_headers):
        resp = client.put(f"/api/users/{salesperson.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=salesperson_headers).status_code == 401

    def test_token_stored_hashed(self, client, db_session, salesperson):
        token = get_auth_token(client, salesperson.email, PASSWORD)
        context = session_service.validate_session(token)
        assert context.user.id == salesperson.id
        assert context.session.token_hash == session_service.hash_token(token)
        assert context.session.token_hash != token


class TestProfile:

    def test_update_name(self, client, salesperson_headers):
        resp = client.put("/api/auth/profile", json={"first_name": "Selma"}, headers=salesperson_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["name"] == "Selma Satış"

    def test_password_change_requires_current(self, client, salesperson, salesperson_headers):
        resp = client.put(
            "/api/auth/profile",
            json={"new_password": "NewPass456!", "current_password": "wrong"},
            headers=salesperson_headers,
        )
        assert resp.status_code == 400

        resp = client.put(
            "/api/auth/profile",
            json={"new_password": "NewPass456!", "current_password": PASSWORD},
            headers=salesperson_headers,
        )
        assert resp.status_code == 200
        assert get_auth_token(client, salesperson.email, "NewPass456!")
