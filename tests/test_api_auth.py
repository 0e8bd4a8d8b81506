"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth endpoints.

These go through the real ASGI stack: routing, dependency injection, the
exception handlers and the sid cookie.

Coverage:
  - register: 201 + cookie attributes, validation-error, email-taken
  - login: success, identical invalid-credentials for every cause
  - me: null when anonymous, principal when logged in, null after expiry
  - logout: clears session and cookie; idempotent
  - session fixation: login replaces any session presented with it
  - tampered cookie reads as anonymous
"""

from __future__ import annotations

from conftest import login, register
from fastapi.testclient import TestClient

from auth.models import Principal


def _use_sid(client: TestClient, value: str) -> None:
    client.cookies.clear()
    client.cookies.set("sid", value)


def _set_cookie_header(resp) -> str:
    headers = [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]
    return next((h for h in headers if h.startswith("sid=")), "")


class TestRegister:
    def test_register_returns_principal_and_sets_cookie(self, client: TestClient) -> None:
        resp = register(client)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["email"] == "a@x.com"
        assert body["nickname"] == ""
        assert isinstance(body["id"], int)
        assert "password" not in resp.text.lower()
        assert resp.headers["cache-control"] == "no-store"

        cookie = _set_cookie_header(resp).lower()
        assert "httponly" in cookie
        assert "samesite=lax" in cookie
        assert "max-age=3600" in cookie
        assert "path=/" in cookie

    def test_register_establishes_session(self, client: TestClient) -> None:
        uid = register(client).json()["id"]
        assert client.get("/api/v1/auth/me").json()["id"] == uid

    def test_duplicate_email_is_conflict(self, client: TestClient, user_store) -> None:
        register(client, email="a@x.com", password="password1")
        before = user_store.get_by_email("a@x.com")
        resp = register(client, email="A@X.COM", password="password2")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "email-taken"
        assert user_store.get_by_email("a@x.com") == before

    def test_invalid_inputs(self, client: TestClient) -> None:
        cases = [
            {"email": "not-an-email", "password": "password1"},
            {"email": "a@x.com", "password": "short"},
            {"email": "a@x.com", "password": "p" * 129},
            {"email": "a@x.com"},
        ]
        for payload in cases:
            resp = client.post("/api/v1/auth/register", json=payload)
            assert resp.status_code == 400, payload
            assert resp.json()["error"]["code"] == "validation-error"

    def test_validation_error_never_echoes_password(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json={"email": "a@x.com", "password": "s3cr"})
        assert resp.status_code == 400
        assert "s3cr" not in resp.text

    def test_password_length_bounds_inclusive(self, client: TestClient) -> None:
        assert register(client, email="min@x.com", password="p" * 8).status_code == 201
        assert register(client, email="max@x.com", password="p" * 128).status_code == 201


class TestLogin:
    def test_login_success(self, client: TestClient) -> None:
        uid = register(client).json()["id"]
        client.cookies.clear()
        resp = login(client, email="A@x.com")
        assert resp.status_code == 200
        assert resp.json() == {"id": uid, "email": "a@x.com", "nickname": ""}
        assert resp.headers["cache-control"] == "no-store"
        assert client.get("/api/v1/auth/me").json()["id"] == uid

    def test_failures_are_indistinguishable(self, client: TestClient, user_store) -> None:
        register(client, email="known@x.com")
        user_store.create(Principal(email="oauth@x.com", provider="google", provider_subject="sub-1"))
        client.cookies.clear()

        responses = [
            login(client, email="unknown@x.com", password="password1"),
            login(client, email="known@x.com", password="wrong-password"),
            login(client, email="oauth@x.com", password="password1"),
        ]
        assert {r.status_code for r in responses} == {401}
        bodies = [r.json() for r in responses]
        assert bodies[0] == bodies[1] == bodies[2]
        assert bodies[0]["error"]["code"] == "invalid-credentials"
        assert all(not _set_cookie_header(r) for r in responses)

    def test_malformed_login_is_validation_error(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": ""})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation-error"

    def test_login_replaces_presented_session(self, client: TestClient, session_store) -> None:
        register(client)
        old_sid_cookie = client.cookies.get("sid")
        login(client)
        new_sid_cookie = client.cookies.get("sid")
        assert new_sid_cookie != old_sid_cookie

        # The pre-login session is gone server-side.
        _use_sid(client, old_sid_cookie)
        assert client.get("/api/v1/auth/me").json() is None


class TestMeAndLogout:
    def test_me_anonymous_is_null(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json() is None

    def test_logout_then_me_is_null(self, client: TestClient) -> None:
        register(client)
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert "sid=" in _set_cookie_header(resp)
        assert client.get("/api/v1/auth/me").json() is None

    def test_logout_twice_is_fine(self, client: TestClient) -> None:
        register(client)
        assert client.post("/api/v1/auth/logout").status_code == 200
        assert client.post("/api/v1/auth/logout").status_code == 200

    def test_stolen_cookie_is_dead_after_logout(self, client: TestClient) -> None:
        register(client)
        sid = client.cookies.get("sid")
        client.post("/api/v1/auth/logout")
        _use_sid(client, sid)
        assert client.get("/api/v1/auth/me").json() is None

    def test_expired_session_is_anonymous(self, client: TestClient, clock) -> None:
        register(client)
        clock.advance(3600)
        assert client.get("/api/v1/auth/me").json() is None

    def test_tampered_cookie_is_anonymous(self, client: TestClient) -> None:
        register(client)
        _use_sid(client, client.cookies.get("sid") + "x")
        assert client.get("/api/v1/auth/me").json() is None

    def test_corrupt_session_row_is_anonymous(self, client: TestClient, session_store) -> None:
        register(client)
        with session_store.engine.connect() as conn:
            conn.exec_driver_sql("UPDATE sessions SET data = '{bad'")
            conn.commit()
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json() is None


class TestProviders:
    def test_no_providers_configured(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/providers")
        assert resp.status_code == 200
        assert resp.json() == []
