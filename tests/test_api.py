"""
HTTP behaviour of the auth and users blueprints through the Flask test client.
"""
from __future__ import annotations

import pytest


def _register(client, email="a@x.com", password="secret1", name="Ada"):
    return client.post("/api/v1/auth/register", json={"email": email, "password": password, "name": name})


def _login(client, email="a@x.com", password="secret1"):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def session_tokens(client):
    assert _register(client).status_code == 201
    resp = _login(client)
    assert resp.status_code == 200
    return resp.get_json()


class TestRegisterEndpoint:
    def test_register_returns_safe_view(self, client):
        resp = _register(client, email="New@X.com")

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["email"] == "new@x.com"
        assert data["role"] == "user"
        assert "password" not in data
        assert "password_hash" not in data

    def test_duplicate_email(self, client):
        _register(client)
        resp = _register(client, email="A@X.COM")

        assert resp.status_code == 409
        assert resp.get_json()["error"] == "CONFLICT"

    def test_missing_fields(self, client):
        resp = client.post("/api/v1/auth/register", json={"email": "a@x.com"})

        body = resp.get_json()
        assert resp.status_code == 400
        assert body["error"] == "BAD_REQUEST"
        assert "password" in body["details"]


class TestLoginEndpoint:
    def test_login_returns_token_pair(self, client, session_tokens):
        assert session_tokens["token_type"] == "bearer"
        assert session_tokens["expires_in"] == 900
        assert session_tokens["access_token"] != session_tokens["refresh_token"]
        assert session_tokens["user"]["email"] == "a@x.com"

    def test_bad_credentials_are_vague(self, client):
        _register(client)
        unknown = _login(client, email="nobody@x.com")
        wrong = _login(client, password="nope-nope")

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.get_json() == wrong.get_json()
        assert unknown.get_json()["message"] == "invalid email or password"

    def test_missing_password(self, client):
        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com"})
        assert resp.status_code == 400


class TestRefreshEndpoint:
    def test_rotation_and_grace_over_http(self, client, session_tokens):
        r0 = session_tokens["refresh_token"]

        first = client.post("/api/v1/auth/refresh", json={"refresh_token": r0})
        assert first.status_code == 200
        r1 = first.get_json()["refresh_token"]
        assert r1 != r0
        assert first.get_json()["rotated"] is True

        again = client.post("/api/v1/auth/refresh", json={"refresh_token": r0})
        assert again.status_code == 200
        assert again.get_json()["refresh_token"] == r1
        assert again.get_json()["rotated"] is False

    def test_reuse_is_forbidden_and_kills_the_family(self, client, session_tokens):
        r0 = session_tokens["refresh_token"]
        r1 = client.post("/api/v1/auth/refresh", json={"refresh_token": r0}).get_json()["refresh_token"]
        client.post("/api/v1/auth/refresh", json={"refresh_token": r1})

        stale = client.post("/api/v1/auth/refresh", json={"refresh_token": r0})
        assert stale.status_code == 403
        assert stale.get_json()["error"] == "REUSE_DETECTED"

        gone = client.post("/api/v1/auth/refresh", json={"refresh_token": r1})
        assert gone.status_code == 401
        assert gone.get_json()["error"] == "FAMILY_REVOKED"

    def test_invalid_refresh_token(self, client):
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "garbage"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "invalid refresh token"

    def test_missing_refresh_token(self, client):
        assert client.post("/api/v1/auth/refresh", json={}).status_code == 400


class TestLogoutEndpoint:
    def test_logout_revokes_access_and_family(self, client, session_tokens):
        access = session_tokens["access_token"]
        refresh = session_tokens["refresh_token"]
        assert client.get("/api/v1/users/me", headers=_bearer(access)).status_code == 200

        resp = client.post("/api/v1/auth/logout", json={"refresh_token": refresh}, headers=_bearer(access))
        assert resp.status_code == 204

        me = client.get("/api/v1/users/me", headers=_bearer(access))
        assert me.status_code == 401
        assert me.get_json()["error"] == "TOKEN_REVOKED"
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": refresh}).status_code == 401

    def test_logout_twice(self, client, session_tokens):
        body = {"refresh_token": session_tokens["refresh_token"]}
        assert client.post("/api/v1/auth/logout", json=body).status_code == 204
        assert client.post("/api/v1/auth/logout", json=body).status_code == 204

    def test_logout_with_garbage(self, client):
        assert client.post("/api/v1/auth/logout", json={"refresh_token": "garbage"}).status_code == 204


class TestUsersEndpoints:
    def test_me_requires_a_token(self, client):
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "TOKEN_INVALID"

    def test_me(self, client, session_tokens):
        resp = client.get("/api/v1/users/me", headers=_bearer(session_tokens["access_token"]))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["email"] == "a@x.com"

    def test_refresh_token_cannot_be_used_as_bearer(self, client, session_tokens):
        resp = client.get("/api/v1/users/me", headers=_bearer(session_tokens["refresh_token"]))
        assert resp.status_code == 401

    def test_session_revocation_is_admin_only(self, client, app, session_tokens):
        user_id = session_tokens["user"]["id"]
        denied = client.delete(f"/api/v1/users/{user_id}/sessions", headers=_bearer(session_tokens["access_token"]))
        assert denied.status_code == 403

        app.extensions["token_authority"].create_admin("root@x.com", "secret1").unwrap()
        admin_access = _login(client, email="root@x.com").get_json()["access_token"]

        resp = client.delete(f"/api/v1/users/{user_id}/sessions", headers=_bearer(admin_access))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["revoked"] == 1
        gone = client.post("/api/v1/auth/refresh", json={"refresh_token": session_tokens["refresh_token"]})
        assert gone.status_code == 401
        me = client.get("/api/v1/users/me", headers=_bearer(session_tokens["access_token"]))
        assert me.get_json()["error"] == "FAMILY_REVOKED"


class TestAppPlumbing:
    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.get_json()["database"] == "ok"

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "NOT_FOUND"

    def test_store_outage_is_503(self, client, app, session_tokens, monkeypatch):
        from authority_store.errors import StoreUnavailable

        def boom(*args, **kwargs):
            raise StoreUnavailable("database unavailable")

        monkeypatch.setattr(app.extensions["token_authority"].families, "get", boom)
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": session_tokens["refresh_token"]})
        assert resp.status_code == 503
        assert resp.get_json()["error"] == "SERVICE_UNAVAILABLE"

    def test_cli_create_admin_and_purge(self, app):
        runner = app.test_cli_runner()

        created = runner.invoke(args=["create-admin", "ops@x.com", "secret1"])
        assert created.exit_code == 0
        assert "created admin" in created.output

        purged = runner.invoke(args=["purge-expired"])
        assert purged.exit_code == 0
        assert "purged 0 families" in purged.output
