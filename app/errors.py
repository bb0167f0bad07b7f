"""
Authentication error taxonomy.

Provider-specific error identifiers are translated to one of these kinds at
the identity-provider boundary (cognito.py). Routes only ever see AuthError.
"""
from enum import Enum


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_UNCONFIRMED = "ACCOUNT_UNCONFIRMED"
    PASSWORD_POLICY_VIOLATION = "PASSWORD_POLICY_VIOLATION"
    INVALID_CHALLENGE_SESSION = "INVALID_CHALLENGE_SESSION"
    DECODE_FAILURE = "DECODE_FAILURE"
    ENCRYPTION_FAILURE = "ENCRYPTION_FAILURE"
    MISCONFIGURED_PROVIDER = "MISCONFIGURED_PROVIDER"
    REFRESH_TOKEN_INVALID = "REFRESH_TOKEN_INVALID"
    PROVIDER_FAILURE = "PROVIDER_FAILURE"
    UNAUTHENTICATED = "UNAUTHENTICATED"


# kind -> (HTTP status, RPC error code, user-facing message)
_ERROR_TABLE: dict[AuthErrorKind, tuple[int, str, str]] = {
    AuthErrorKind.INVALID_CREDENTIALS: (401, "UNAUTHORIZED", "Incorrect username or password."),
    AuthErrorKind.USER_NOT_FOUND: (404, "NOT_FOUND", "User not found."),
    AuthErrorKind.ACCOUNT_UNCONFIRMED: (403, "FORBIDDEN", "Account is not confirmed."),
    AuthErrorKind.PASSWORD_POLICY_VIOLATION: (
        400,
        "BAD_REQUEST",
        "Password does not meet the password policy.",
    ),
    AuthErrorKind.INVALID_CHALLENGE_SESSION: (
        401,
        "UNAUTHORIZED",
        "Session is invalid. Please sign in again.",
    ),
    AuthErrorKind.DECODE_FAILURE: (500, "INTERNAL_SERVER_ERROR", "Failed to decode identity token."),
    AuthErrorKind.ENCRYPTION_FAILURE: (500, "INTERNAL_SERVER_ERROR", "Failed to encrypt token."),
    AuthErrorKind.MISCONFIGURED_PROVIDER: (
        500,
        "INTERNAL_SERVER_ERROR",
        "Authentication provider is not configured.",
    ),
    AuthErrorKind.REFRESH_TOKEN_INVALID: (
        401,
        "UNAUTHORIZED",
        "Refresh token is invalid. Please sign in again.",
    ),
    AuthErrorKind.PROVIDER_FAILURE: (500, "INTERNAL_SERVER_ERROR", "Authentication failed."),
    AuthErrorKind.UNAUTHENTICATED: (401, "UNAUTHORIZED", "Not authenticated."),
}


class AuthError(Exception):
    """A failure from the sign-in, challenge, refresh or session pipeline."""

    def __init__(self, kind: AuthErrorKind, message: str | None = None):
        self.kind = kind
        self.message = message or _ERROR_TABLE[kind][2]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return _ERROR_TABLE[self.kind][0]

    @property
    def rpc_code(self) -> str:
        return _ERROR_TABLE[self.kind][1]

    def to_dict(self) -> dict:
        """Body for RPC error responses."""
        return {"error": {"code": self.rpc_code, "message": self.message}}
