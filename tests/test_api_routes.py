"""
tests/test_api_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> request model
validation -> Authenticator -> fake DNS/SMTP and in-memory SQLite ->
error envelope. The module shares one api_client, so each test uses its
own mailbox from the fake world (alice, bob, carol) or the no-MX domain.

Coverage:
  - Envelope validation: missing scheme, unknown scheme, extra fields -> 422
  - sign-in: 201, 409 Conflict, 403 policy, 422 unreachable / malformed
  - log-in: token issued with Cache-Control: no-store; 401 on bad password
  - validate, me, log-out (revocation), sign-out
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from core.permissions import Permissions

PASSWORD = "correct-horse-battery"


def _basic(email: str, password: str = PASSWORD) -> dict:
    return {"basic": {"email": email, "password": password}}


def _log_in(client: TestClient, email: str, permissions: int) -> str:
    resp = client.post("/api/v1/auth/log-in", json={**_basic(email), "permissions": permissions})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


class TestEnvelope:
    def test_missing_scheme(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json={})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_unknown_scheme(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json={"oauth": {"token": "x"}})
        assert resp.status_code == 422

    def test_extra_field_in_basic(self, api_client: TestClient) -> None:
        body = {"basic": {"email": "alice@example.org", "password": PASSWORD, "admin": True}}
        assert api_client.post("/api/v1/auth/sign-in", json=body).status_code == 422

    def test_negative_permissions(self, api_client: TestClient) -> None:
        body = {**_basic("alice@example.org"), "permissions": -1}
        assert api_client.post("/api/v1/auth/log-in", json=body).status_code == 422


class TestSignIn:
    def test_sign_in_then_conflict(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("alice@example.org"))
        assert resp.status_code == 201, resp.text
        assert resp.json()["valid"] is True

        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("alice@example.org"))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_blacklisted_domain(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("x@blocked.example"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "policy_violation"

    def test_blacklisted_mx_host(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("x@relay.example"))
        assert resp.status_code == 403

    def test_unreachable(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("nobody@example.org"))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "unreachable"

    def test_malformed_email(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("not-an-email"))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "malformed_email"

    def test_resolution_failure(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("x@dead.example"))
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "resolution_failure"

    def test_password_too_long(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("carol@example.org", "p" * 73))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "password_too_long"


class TestTokens:
    def test_log_in_validate_me_log_out(self, api_client: TestClient) -> None:
        api_client.post("/api/v1/auth/sign-in", json=_basic("bob@example.org"))

        resp = api_client.post(
            "/api/v1/auth/log-in",
            json={**_basic("bob@example.org"), "permissions": int(Permissions.BLOQ_MANAGER)},
        )
        assert resp.status_code == 200, resp.text
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["permissions"] == int(Permissions.BLOQ_MANAGER)
        token = data["token"]

        resp = api_client.post(
            "/api/v1/auth/validate", json={"token": token, "permissions": int(Permissions.DELETE_BLOQ)}
        )
        assert resp.json() == {"valid": True, "message": None}
        resp = api_client.post(
            "/api/v1/auth/validate", json={"token": token, "permissions": int(Permissions.CREATE_PREFERENCE)}
        )
        assert resp.json()["valid"] is False

        resp = api_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json() == {"client": "bob@example.org", "permissions": int(Permissions.BLOQ_MANAGER)}

        assert api_client.post("/api/v1/auth/log-out", json={"token": token}).status_code == 200
        resp = api_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert api_client.post("/api/v1/auth/log-out", json={"token": token}).status_code == 401

    def test_log_in_wrong_password(self, api_client: TestClient) -> None:
        api_client.post("/api/v1/auth/sign-in", json=_basic("anyone@nomx.example"))
        resp = api_client.post("/api/v1/auth/log-in", json=_basic("anyone@nomx.example", "wrong"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_log_in_unknown_user_same_message(self, api_client: TestClient) -> None:
        api_client.post("/api/v1/auth/sign-in", json=_basic("anyone@nomx.example"))
        wrong = api_client.post("/api/v1/auth/log-in", json=_basic("anyone@nomx.example", "wrong"))
        unknown = api_client.post("/api/v1/auth/log-in", json=_basic("ghost@nomx.example"))
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    def test_me_without_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_validate_garbage_token(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/validate", json={"token": "garbage", "permissions": 2})
        assert resp.status_code == 200
        assert resp.json()["valid"] is False


class TestSignOut:
    def test_sign_out(self, api_client: TestClient) -> None:
        api_client.post("/api/v1/auth/sign-in", json=_basic("carol@example.org"))

        resp = api_client.post("/api/v1/auth/sign-out", json=_basic("carol@example.org", "wrong"))
        assert resp.status_code == 401

        resp = api_client.post("/api/v1/auth/sign-out", json=_basic("carol@example.org"))
        assert resp.status_code == 200

        resp = api_client.post("/api/v1/auth/log-in", json=_basic("carol@example.org"))
        assert resp.status_code == 401

        resp = api_client.post("/api/v1/auth/sign-in", json=_basic("carol@example.org"))
        assert resp.status_code == 201
