"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> auth dependency
injection -> AuthService -> SQLite stores -> response model serialization.

Coverage:
  - Register: 201 without password_hash, 400 duplicate, 422 invalid body
  - Login: 200 token pair + no-store header, 401 identical body for both failure causes
  - Refresh: 200 happy path, 403 garbage / after logout
  - Sessions: list, revoke own (200), revoke foreign (403 and still active)
  - /me and /admin-only: 401 without token, 403 for non-admin, 200 for admin
  - Health: 200 without auth

Fixtures used (from conftest.py):
  - api_client: TestClient over a fresh shared-memory database, rotation disabled
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.store import UserStore

PASSWORD = "secret1"


def _register(client: TestClient, email: str = "a@x.com") -> dict:
    resp = client.post("/api/v1/auth/register", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 201, resp.text
    return resp.json()["user"]


def _login(client: TestClient, email: str = "a@x.com") -> dict:
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _bearer(tokens: dict) -> dict:
    return {"Authorization": f"Bearer {tokens['access_token']}"}


class TestRegisterRoute:
    def test_register_returns_user_without_hash(self, api_client: TestClient) -> None:
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"email": "a@x.com", "password": PASSWORD, "full_name": "Ada"},
        )
        assert resp.status_code == 201
        user = resp.json()["user"]
        assert user["email"] == "a@x.com"
        assert user["role"] == "user"
        assert user["full_name"] == "Ada"
        assert "password_hash" not in user
        assert "password" not in resp.text

    def test_duplicate_email_returns_400(self, api_client: TestClient) -> None:
        _register(api_client)
        resp = api_client.post("/api/v1/auth/register", json={"email": "a@x.com", "password": PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_invalid_email_returns_422(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/register", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_short_password_returns_422(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/register", json={"email": "a@x.com", "password": "12345"})
        assert resp.status_code == 422

    def test_password_with_surrounding_spaces_round_trips(self, api_client: TestClient) -> None:
        """The password is stored exactly as sent, so the same string logs in."""
        body = {"email": "space@x.com", "password": "  secret1  "}
        assert api_client.post("/api/v1/auth/register", json=body).status_code == 201

        resp = api_client.post("/api/v1/auth/login", json=body)
        assert resp.status_code == 200, resp.text
        trimmed = api_client.post("/api/v1/auth/login", json={"email": "space@x.com", "password": "secret1"})
        assert trimmed.status_code == 401

    def test_email_with_trailing_space_is_rejected_not_trimmed(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/register", json={"email": "q@x.com ", "password": PASSWORD})
        assert resp.status_code == 422
        login = api_client.post("/api/v1/auth/login", json={"email": "q@x.com", "password": PASSWORD})
        assert login.status_code == 401


class TestLoginRoute:
    def test_login_returns_token_pair(self, api_client: TestClient) -> None:
        _register(api_client)
        resp = api_client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 900
        assert data["access_token"] and data["refresh_token"]

    def test_failures_are_indistinguishable(self, api_client: TestClient) -> None:
        _register(api_client)
        unknown = api_client.post("/api/v1/auth/login", json={"email": "b@x.com", "password": PASSWORD})
        wrong = api_client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "wrong-pass"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["code"] == "invalid_credentials"


class TestRefreshRoute:
    def test_refresh_returns_new_pair(self, api_client: TestClient) -> None:
        _register(api_client)
        tokens = _login(api_client)
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        me = api_client.get("/api/v1/auth/me", headers=_bearer(resp.json()))
        assert me.status_code == 200

    def test_garbage_refresh_token_returns_403(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": "garbage"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "invalid_refresh_token"

    def test_refresh_after_logout_all_returns_403(self, api_client: TestClient) -> None:
        _register(api_client)
        tokens = _login(api_client)
        resp = api_client.post("/api/v1/auth/logout", headers=_bearer(tokens))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out from all sessions."

        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 403


class TestSessionRoutes:
    def test_list_and_revoke_own_session(self, api_client: TestClient) -> None:
        _register(api_client)
        first = _login(api_client)
        second = _login(api_client)

        sessions = api_client.get("/api/v1/auth/sessions", headers=_bearer(second)).json()
        assert len(sessions) == 2
        assert sessions[0]["ip"] == "testclient"

        target = sessions[0]["session_id"]
        resp = api_client.delete(f"/api/v1/auth/sessions/{target}", headers=_bearer(first))
        assert resp.status_code == 200
        remaining = api_client.get("/api/v1/auth/sessions", headers=_bearer(first)).json()
        assert [s["session_id"] for s in remaining] != [target]
        assert len(remaining) == 1

    def test_revoke_foreign_session_returns_403(self, api_client: TestClient) -> None:
        _register(api_client, "owner@x.com")
        _register(api_client, "intruder@x.com")
        owner = _login(api_client, "owner@x.com")
        intruder = _login(api_client, "intruder@x.com")
        (session,) = api_client.get("/api/v1/auth/sessions", headers=_bearer(owner)).json()

        resp = api_client.delete(f"/api/v1/auth/sessions/{session['session_id']}", headers=_bearer(intruder))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

        still = api_client.get("/api/v1/auth/sessions", headers=_bearer(owner)).json()
        assert [s["session_id"] for s in still] == [session["session_id"]]

    def test_logout_single_session(self, api_client: TestClient) -> None:
        _register(api_client)
        first = _login(api_client)
        second = _login(api_client)
        sessions = api_client.get("/api/v1/auth/sessions", headers=_bearer(first)).json()

        resp = api_client.post(
            "/api/v1/auth/logout",
            json={"session_id": sessions[-1]["session_id"]},
            headers=_bearer(first),
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully."
        assert len(api_client.get("/api/v1/auth/sessions", headers=_bearer(second)).json()) == 1

    def test_sessions_require_auth(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/sessions")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"


class TestProfileRoutes:
    def test_me_returns_profile(self, api_client: TestClient) -> None:
        _register(api_client)
        tokens = _login(api_client)
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(tokens))
        assert resp.status_code == 200
        assert resp.json()["email"] == "a@x.com"
        assert "password_hash" not in resp.json()

    def test_me_with_bad_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    def test_admin_only_forbidden_for_user(self, api_client: TestClient) -> None:
        _register(api_client)
        tokens = _login(api_client)
        resp = api_client.get("/api/v1/auth/admin-only", headers=_bearer(tokens))
        assert resp.status_code == 403

    def test_admin_only_allows_admin(self, api_client: TestClient) -> None:
        user = _register(api_client, "root@x.com")
        users = UserStore(api_client.app.state.auth_service._users.engine)
        users.update(user["id"], role="admin")
        tokens = _login(api_client, "root@x.com")

        resp = api_client.get("/api/v1/auth/admin-only", headers=_bearer(tokens))
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "admin"


def test_health_no_auth_required(api_client: TestClient) -> None:
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.json()["version"]
