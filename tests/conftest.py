"""
Shared test fixtures and utilities.

Environment is set before any app module is imported: config validates
AUTH_SECRET and crypto derives its key at import time.
"""
import os

os.environ["ENV"] = "test"
os.environ["AUTH_SECRET"] = "test-auth-secret-key-for-testing-purposes-only"
os.environ["AUTH_PROVIDER"] = "mock"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECURE_COOKIES"] = "false"
os.environ.pop("COGNITO_CLIENT_SECRET", None)

import time
from http.cookies import SimpleCookie

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from starlette.requests import Request

from main import create_app
from mock_cognito import FakeIdentityProvider

# Test JWT secret (only for testing; tokens are decoded, never verified)
TEST_JWT_SECRET = "test-secret-key-for-testing-only"

# Same-origin header for RPC POSTs (TestClient sends Host: testserver)
SAME_ORIGIN = {"Origin": "http://testserver"}


def create_test_token(
    sub: str = "user-123",
    email: str = "test@example.com",
    name: str | None = "Test User",
    expired: bool = False,
    **extra,
) -> str:
    """Create an id-token-shaped JWT with an exp one hour away (or one hour ago)."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "cognito:username": email,
        "exp": now - 3600 if expired else now + 3600,
        **extra,
    }
    if name is not None:
        payload["name"] = name
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def make_request(cookies: dict[str, str] | None = None, method: str = "GET") -> Request:
    """Bare Starlette request carrying the given cookies."""
    header = "; ".join(f"{k}={v}" for k, v in (cookies or {}).items())
    headers = [(b"cookie", header.encode("latin-1"))] if header else []
    return Request(
        {
            "type": "http",
            "method": method,
            "path": "/",
            "headers": headers,
            "query_string": b"",
        }
    )


def response_cookies(response) -> dict:
    """Parse every Set-Cookie header of a Starlette or httpx response into morsels."""
    if hasattr(response.headers, "get_list"):
        raw = response.headers.get_list("set-cookie")
    else:
        raw = response.headers.getlist("set-cookie")
    parsed = {}
    for header in raw:
        cookie = SimpleCookie()
        cookie.load(header)
        for name, morsel in cookie.items():
            parsed[name] = morsel
    return parsed


@pytest.fixture
def provider() -> FakeIdentityProvider:
    """Fresh fake user pool per test."""
    return FakeIdentityProvider()


@pytest.fixture
def app(provider):
    return create_app(provider=provider)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
