import asyncio
import base64
import time

import httpx
import pytest
from starlette.requests import Request

from crypto import decrypt, encrypt
from main import create_app
from middleware import _replace_request_cookies, is_protected
from mock_cognito import FakeIdentityProvider
from security import decode_jwt

from conftest import create_test_token, make_request, response_cookies


@pytest.mark.parametrize(
    "path,protected",
    [
        ("/private", True),
        ("/private/settings", True),
        ("/privateer", False),
        ("/", False),
        ("/api/auth/session", False),
    ],
)
def test_is_protected(path, protected):
    assert is_protected(path) is protected


class TestGate:

    def test_unauthenticated_is_redirected_with_callback(self, client):
        response = client.get("/private", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/signin?callbackUrl=%2Fprivate"
        assert response_cookies(response) == {}

    def test_nested_path_callback(self, client):
        response = client.get("/private/settings", follow_redirects=False)
        assert response.headers["location"] == "/signin?callbackUrl=%2Fprivate%2Fsettings"

    def test_public_paths_are_not_gated(self, client):
        assert client.get("/health", follow_redirects=False).status_code == 200

    def test_valid_session_passes(self, client):
        client.post(
            "/api/auth/signin",
            json={"username": "test@example.com", "password": "password123"},
        )

        response = client.get("/private", follow_redirects=False)

        assert response.status_code == 200
        assert response.json()["user"]["id"] == "user-123"
        assert response_cookies(response) == {}

    def test_tampered_cookie_is_redirected(self, client):
        raw = bytearray(base64.b64decode(encrypt(create_test_token())))
        raw[-1] ^= 0x01
        client.cookies.set("id_token", base64.b64encode(bytes(raw)).decode())
        assert client.get("/private", follow_redirects=False).status_code == 307


class TestRefresh:

    def test_expired_id_token_is_refreshed(self, client, provider):
        client.cookies.set("id_token", encrypt(create_test_token(expired=True)))
        client.cookies.set("refresh_token", encrypt("refresh-token-user-123"))

        response = client.get("/private", follow_redirects=False)

        assert response.status_code == 200
        # the handler already sees the refreshed session
        assert response.json()["user"]["id"] == "user-123"
        cookies = response_cookies(response)
        assert set(cookies) == {"access_token", "id_token"}
        assert decode_jwt(decrypt(cookies["id_token"].value))["sub"] == "user-123"
        assert "refresh" in provider.calls

    def test_missing_id_token_with_refresh_cookie_is_refreshed(self, client):
        client.cookies.set("refresh_token", encrypt("refresh-token-user-123"))
        response = client.get("/private", follow_redirects=False)
        assert response.status_code == 200

    def test_rejected_refresh_token_redirects_and_clears_cookies(self, client):
        client.cookies.set("id_token", encrypt(create_test_token(expired=True)))
        client.cookies.set("refresh_token", encrypt("invalid-refresh-token"))

        response = client.get("/private", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/signin?callbackUrl=%2Fprivate"
        cookies = response_cookies(response)
        assert set(cookies) == {"access_token", "id_token", "refresh_token"}
        assert all(morsel["max-age"] == "0" for morsel in cookies.values())

    def test_undecryptable_refresh_cookie_redirects(self, client, provider):
        client.cookies.set("refresh_token", "garbage")

        response = client.get("/private", follow_redirects=False)

        assert response.status_code == 307
        assert "refresh" not in provider.calls

    def test_refresh_only_happens_in_the_gate(self, client, provider):
        client.cookies.set("id_token", encrypt(create_test_token(expired=True)))
        client.cookies.set("refresh_token", encrypt("refresh-token-user-123"))

        assert client.get("/api/auth/session").json() is None
        assert "refresh" not in provider.calls


class SlowRefreshProvider(FakeIdentityProvider):
    """Refresh blocks like a network call to Cognito."""

    def refresh(self, refresh_token, username=None):
        time.sleep(0.5)
        return super().refresh(refresh_token, username)


@pytest.mark.asyncio
async def test_refresh_does_not_block_the_event_loop():
    app = create_app(provider=SlowRefreshProvider())
    cookies = {
        "id_token": encrypt(create_test_token(expired=True)),
        "refresh_token": encrypt("refresh-token-user-123"),
    }
    ticks = []

    async def ticker():
        while True:
            ticks.append(time.monotonic())
            await asyncio.sleep(0.05)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver", cookies=cookies
    ) as client:
        ticking = asyncio.create_task(ticker())
        try:
            response = await client.get("/private")
        finally:
            ticking.cancel()

    assert response.status_code == 200
    gaps = [later - earlier for earlier, later in zip(ticks, ticks[1:])]
    assert len(gaps) >= 5
    assert max(gaps) < 0.3


def test_rewritten_cookie_header_keeps_other_cookies_verbatim():
    request = make_request(
        {"prefs": '"a\\073b"', "id_token": "stale", "theme": "dark"}
    )

    _replace_request_cookies(request, {"id_token": "fresh", "access_token": "new"})

    rewritten = Request(request.scope)
    assert rewritten.cookies == {
        "prefs": "a;b",
        "theme": "dark",
        "id_token": "fresh",
        "access_token": "new",
    }
