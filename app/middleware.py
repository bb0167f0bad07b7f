"""
Authorization gate for protected pages.

Requests under PROTECTED_PATH_PREFIX need an unexpired id token cookie. When it
is missing or expired but a refresh token cookie is present, the tokens are
refreshed here: the downstream handler sees the new cookies through a rewritten
Cookie header and the browser receives them on the response. Anything else is
redirected to the sign-in page with the original path as callbackUrl.
"""
import logging
import time
from urllib.parse import urlencode

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from config import (
    ACCESS_TOKEN_COOKIE_NAME,
    ID_TOKEN_COOKIE_NAME,
    PROTECTED_PATH_PREFIX,
    REFRESH_TOKEN_COOKIE_NAME,
    SIGNIN_PATH,
)
from crypto import decrypt, encrypt
from errors import AuthError
from schemas import TokenSet
from security import decode_jwt
from session import (
    delete_token_cookies,
    read_id_token_claims,
    valid_id_token_claims,
    write_token_cookies,
)

logger = logging.getLogger(__name__)


def is_protected(path: str, prefix: str = PROTECTED_PATH_PREFIX) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def signin_redirect(request: Request) -> RedirectResponse:
    query = urlencode({"callbackUrl": request.url.path})
    return RedirectResponse(url=f"{SIGNIN_PATH}?{query}", status_code=307)


def _replace_request_cookies(request: Request, updates: dict[str, str]) -> None:
    """
    Rewrite the Cookie header in the ASGI scope so later readers see `updates`.
    Other cookies are passed through exactly as the client sent them.
    """
    kept = []
    for chunk in request.headers.get("cookie", "").split(";"):
        chunk = chunk.strip()
        if chunk and chunk.split("=", 1)[0].strip() not in updates:
            kept.append(chunk)
    # token values are base64 and need no quoting
    kept.extend(f"{name}={value}" for name, value in updates.items())
    cookie_header = "; ".join(kept)
    headers = [(k, v) for k, v in request.scope["headers"] if k != b"cookie"]
    headers.append((b"cookie", cookie_header.encode("latin-1")))
    request.scope["headers"] = headers


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Redirects unauthenticated requests for protected paths; refreshes expired tokens."""

    def __init__(self, app, provider=None, clock=time.time):
        super().__init__(app)
        self._provider = provider
        self.clock = clock

    def provider(self, request: Request):
        return self._provider or request.app.state.identity_provider

    def _refresh(self, request: Request) -> TokenSet | None:
        refresh_token = decrypt(request.cookies.get(REFRESH_TOKEN_COOKIE_NAME))
        if not refresh_token:
            return None
        # The expired id token still names the user, which Cognito needs for SECRET_HASH
        stale = decode_jwt(decrypt(request.cookies.get(ID_TOKEN_COOKIE_NAME))) or {}
        username = stale.get("cognito:username") or stale.get("sub")
        try:
            tokens = self.provider(request).refresh(refresh_token, username)
        except AuthError as exc:
            logger.warning("Token refresh failed: %s", exc.kind.value)
            return None
        if valid_id_token_claims(tokens.id_token, self.clock()) is None:
            logger.warning("Token refresh returned an unusable id token")
            return None
        return tokens

    async def dispatch(self, request: Request, call_next) -> Response:
        if not is_protected(request.url.path):
            return await call_next(request)

        claims = read_id_token_claims(
            request.cookies.get(ID_TOKEN_COOKIE_NAME), self.clock()
        )
        if claims is not None:
            return await call_next(request)

        had_refresh_cookie = REFRESH_TOKEN_COOKIE_NAME in request.cookies
        tokens = None
        if had_refresh_cookie:
            # provider calls block (requests), keep them off the event loop
            tokens = await run_in_threadpool(self._refresh, request)
        if tokens is None:
            response = signin_redirect(request)
            if had_refresh_cookie:
                delete_token_cookies(response)
            return response

        logger.info("Refreshed session tokens for %s", request.url.path)
        _replace_request_cookies(
            request,
            {
                ACCESS_TOKEN_COOKIE_NAME: encrypt(tokens.access_token),
                ID_TOKEN_COOKIE_NAME: encrypt(tokens.id_token),
            },
        )
        response = await call_next(request)
        write_token_cookies(response, tokens)
        return response
