"""
Token decoding and request-origin checks.

decode_jwt reads the payload of an identity-provider JWT for display only.
Signatures are not checked here: Cognito verified the user when it issued the
token, and the token only reaches us through an encrypted, HttpOnly cookie.
"""
import json
import time
from urllib.parse import urlsplit

from jose.exceptions import JOSEError
from jose.utils import base64url_decode

SAFE_METHODS = ("GET", "HEAD")


def decode_jwt(token: str | None) -> dict | None:
    """Return the claims of a JWT payload segment, or None if it cannot be read."""
    if not token:
        return None
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return None
    try:
        claims = json.loads(base64url_decode(parts[1].encode("ascii")))
    except (JOSEError, UnicodeError, ValueError, TypeError):
        return None
    if not isinstance(claims, dict):
        return None
    return claims


def is_expired(claims: dict, now: float | None = None) -> bool:
    """True when `exp` is missing, not a number, or not in the future."""
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return True
    if now is None:
        now = time.time()
    return exp <= now


def _host_of(url: str) -> str | None:
    try:
        netloc = urlsplit(url).netloc
    except ValueError:
        return None
    return netloc or None


def is_same_origin(method: str, headers) -> bool:
    """
    CSRF check for state-changing requests: Origin (or, failing that, Referer)
    must name the same host as the Host header. GET/HEAD always pass.
    """
    if method.upper() in SAFE_METHODS:
        return True
    host = headers.get("host")
    if not host:
        return False

    origin = headers.get("origin")
    if origin:
        origin_host = _host_of(origin)
        if origin_host is None:
            return False
        if origin_host == host:
            return True

    referer = headers.get("referer")
    if referer:
        referer_host = _host_of(referer)
        if referer_host is None:
            return False
        if referer_host == host:
            return True

    return False
