"""
REST auth endpoints (/api/auth/*) against the in-process fake user pool, plus app-level error handling.
"""
from fastapi.testclient import TestClient

from crypto import decrypt, encrypt
from security import decode_jwt

from conftest import SAME_ORIGIN, create_test_token, response_cookies


def _sign_in(client, username="test@example.com", password="password123"):
    return client.post("/api/auth/signin", json={"username": username, "password": password})


class TestSignIn:

    def test_success_sets_encrypted_cookies(self, client):
        response = _sign_in(client)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["user"]["id"] == "user-123"
        assert data["user"]["email"] == "test@example.com"
        cookies = response_cookies(response)
        assert set(cookies) == {"access_token", "id_token", "refresh_token"}
        assert decode_jwt(decrypt(cookies["id_token"].value))["sub"] == "user-123"
        assert decrypt(cookies["refresh_token"].value) == "refresh-token-user-123"
        assert cookies["id_token"]["httponly"] is True

    def test_password_change_required_returns_challenge_without_cookies(self, client):
        response = _sign_in(client, "newpassword@example.com", "oldpassword")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["requiresPasswordChange"] is True
        assert data["challenge"]["name"] == "NEW_PASSWORD_REQUIRED"
        assert data["challenge"]["session"]
        assert data["challenge"]["username"] == "newpassword@example.com"
        assert response_cookies(response) == {}

    def test_wrong_password(self, client):
        response = _sign_in(client, password="wrong")
        assert response.status_code == 401
        assert response.json()["detail"] == "Incorrect username or password."
        assert response_cookies(response) == {}

    def test_unknown_user(self, client):
        assert _sign_in(client, "nobody@example.com").status_code == 404

    def test_unconfirmed_user(self, client):
        assert _sign_in(client, "unconfirmed@example.com").status_code == 403

    def test_missing_fields(self, client, provider):
        response = client.post("/api/auth/signin", json={"username": "test@example.com"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Username and password are required"
        assert provider.calls == []


class TestChangePassword:

    def test_completes_challenge_and_signs_in(self, client):
        challenge = _sign_in(client, "newpassword@example.com", "oldpassword").json()["challenge"]

        response = client.post(
            "/api/auth/change-password",
            json={
                "session": challenge["session"],
                "newPassword": "NewPassword1!",
                "username": challenge["username"],
            },
        )

        assert response.status_code == 200
        assert response.json()["user"]["id"] == "user-789"
        assert "id_token" in response_cookies(response)

    def test_missing_fields(self, client):
        response = client.post("/api/auth/change-password", json={"session": "s"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Session and new password are required"

    def test_invalid_session(self, client):
        response = client.post(
            "/api/auth/change-password",
            json={"session": "session-unknown", "newPassword": "NewPassword1!"},
        )
        assert response.status_code == 401

    def test_short_password_rejected_before_provider(self, client, provider):
        challenge = _sign_in(client, "newpassword@example.com", "oldpassword").json()["challenge"]
        provider.calls.clear()

        response = client.post(
            "/api/auth/change-password",
            json={"session": challenge["session"], "newPassword": "Short1!"},
        )

        assert response.status_code == 400
        assert provider.calls == []


class TestSessionAndSignOut:

    def test_session_is_null_when_signed_out(self, client):
        response = client.get("/api/auth/session")
        assert response.status_code == 200
        assert response.json() is None

    def test_session_after_sign_in(self, client):
        _sign_in(client)
        data = client.get("/api/auth/session").json()
        assert data["user"]["id"] == "user-123"
        assert data["user"]["name"] == "Test User"
        assert data["expires"]

    def test_expired_id_token_gives_null_session(self, client):
        client.cookies.set("id_token", encrypt(create_test_token(expired=True)))
        assert client.get("/api/auth/session").json() is None

    def test_signout_deletes_cookies(self, client):
        _sign_in(client)

        response = client.post("/api/auth/signout")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        cookies = response_cookies(response)
        assert set(cookies) == {"access_token", "id_token", "refresh_token"}
        assert all(morsel["max-age"] == "0" for morsel in cookies.values())
        assert client.get("/api/auth/session").json() is None

    def test_signout_without_session_succeeds(self, client):
        assert client.post("/api/auth/signout").json() == {"success": True}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_unhandled_error_is_generic_500(app):
    def explode():
        raise RuntimeError("database password is hunter2")

    app.add_api_route("/explode", explode, methods=["GET"])

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/explode")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_http_errors_keep_their_status(client):
    response = client.post("/api/trpc/todo.toggle", json={"id": 987654321}, headers=SAME_ORIGIN)
    assert response.status_code == 404
