"""
Cookie-backed session: encrypted Cognito tokens in three HttpOnly cookies.

Nothing is stored server-side. The session is rebuilt from the id token cookie
on every request and memoized on request.state for the rest of that request.
get() never refreshes; refreshing expired tokens is the gate middleware's job.
"""
import time
from datetime import datetime, UTC

from fastapi import Depends, Request, Response

from config import (
    ACCESS_TOKEN_COOKIE_NAME,
    ACCESS_TOKEN_MAX_AGE,
    ID_TOKEN_COOKIE_NAME,
    REFRESH_TOKEN_COOKIE_NAME,
    REFRESH_TOKEN_MAX_AGE,
    SECURE_COOKIES,
)
from crypto import decrypt, encrypt
from errors import AuthError, AuthErrorKind
from schemas import AppSession, SessionUser, TokenSet
from security import decode_jwt, is_expired

TOKEN_COOKIE_NAMES = (
    ACCESS_TOKEN_COOKIE_NAME,
    ID_TOKEN_COOKIE_NAME,
    REFRESH_TOKEN_COOKIE_NAME,
)

_UNSET = object()


# Cookie flags: HttpOnly (no JS access), SameSite=Strict, Secure in production
def _cookie_kwargs(secure: bool = SECURE_COOKIES) -> dict:
    return {
        "httponly": True,
        "samesite": "strict",
        "secure": secure,
        "path": "/",
    }


def session_from_claims(claims: dict) -> AppSession:
    exp = claims.get("exp")
    expires = (
        datetime.fromtimestamp(exp, tz=UTC).isoformat()
        if isinstance(exp, (int, float)) and not isinstance(exp, bool)
        else None
    )
    return AppSession(
        user=SessionUser(
            id=str(claims["sub"]),
            email=claims.get("email"),
            name=claims.get("name") or claims.get("cognito:username"),
            image=claims.get("picture"),
        ),
        expires=expires,
    )


def valid_id_token_claims(id_token: str | None, now: float) -> dict | None:
    """Claims of an id token that names a subject and is unexpired, else None."""
    claims = decode_jwt(id_token)
    if not claims or not claims.get("sub") or is_expired(claims, now):
        return None
    return claims


def read_id_token_claims(encrypted_id_token: str | None, now: float) -> dict | None:
    """Same as valid_id_token_claims for the encrypted cookie value."""
    return valid_id_token_claims(decrypt(encrypted_id_token), now)


def write_token_cookies(response: Response, tokens: TokenSet) -> None:
    """Encrypt and set the token cookies. The refresh cookie is only written when present."""
    kwargs = _cookie_kwargs()
    response.set_cookie(
        ACCESS_TOKEN_COOKIE_NAME,
        encrypt(tokens.access_token),
        max_age=ACCESS_TOKEN_MAX_AGE,
        **kwargs,
    )
    response.set_cookie(
        ID_TOKEN_COOKIE_NAME,
        encrypt(tokens.id_token),
        max_age=ACCESS_TOKEN_MAX_AGE,
        **kwargs,
    )
    if tokens.refresh_token:
        response.set_cookie(
            REFRESH_TOKEN_COOKIE_NAME,
            encrypt(tokens.refresh_token),
            max_age=REFRESH_TOKEN_MAX_AGE,
            **kwargs,
        )


def delete_token_cookies(response: Response) -> None:
    for name in TOKEN_COOKIE_NAMES:
        response.delete_cookie(name, **_cookie_kwargs())


class SessionStore:
    """Reads the session from the request cookies and writes changes to the response."""

    def __init__(self, request: Request, response: Response, clock=time.time):
        self.request = request
        self.response = response
        self.clock = clock

    def save(self, tokens: TokenSet) -> AppSession:
        claims = decode_jwt(tokens.id_token)
        if not claims or not claims.get("sub"):
            raise AuthError(AuthErrorKind.DECODE_FAILURE)
        session = session_from_claims(claims)
        write_token_cookies(self.response, tokens)
        self.request.state.app_session = session
        return session

    def get(self) -> AppSession | None:
        claims = read_id_token_claims(
            self.request.cookies.get(ID_TOKEN_COOKIE_NAME), self.clock()
        )
        if claims is None:
            return None
        return session_from_claims(claims)

    def clear(self) -> None:
        delete_token_cookies(self.response)
        self.request.state.app_session = None


def get_session_store(request: Request, response: Response) -> SessionStore:
    """FastAPI dependency: session store bound to this request/response pair."""
    return SessionStore(request, response)


def get_session(
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> AppSession | None:
    """FastAPI dependency: current session or None, decrypted at most once per request."""
    cached = getattr(request.state, "app_session", _UNSET)
    if cached is not _UNSET:
        return cached
    session = store.get()
    request.state.app_session = session
    return session


def require_session(session: AppSession | None = Depends(get_session)) -> AppSession:
    """FastAPI dependency for procedures that need a signed-in user."""
    if session is None:
        raise AuthError(AuthErrorKind.UNAUTHENTICATED)
    return session
