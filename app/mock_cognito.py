"""
In-process stand-in for the Cognito user pool.

Selected with AUTH_PROVIDER=mock (the default under ENV=test) and injected
directly in tests. State lives on the instance, so every app or test gets its
own users and challenge sessions.
"""
import copy
import json
import secrets
import time
from dataclasses import dataclass

from jose import jwt

from cognito import resolve_challenge_username, validate_new_password
from errors import AuthError, AuthErrorKind
from schemas import NEW_PASSWORD_REQUIRED, Challenge, TokenSet

# Tokens are only decoded, never verified, so the signing key is throwaway
_SIGNING_KEY = "mock-cognito-signing-key"
TOKEN_LIFETIME = 3600
REFRESH_PREFIX = "refresh-token-"


@dataclass
class FakeUser:
    username: str
    email: str
    password: str
    confirmed: bool
    requires_password_change: bool
    sub: str
    name: str | None = None


DEFAULT_USERS = [
    FakeUser(
        username="test@example.com",
        email="test@example.com",
        password="password123",
        confirmed=True,
        requires_password_change=False,
        sub="user-123",
        name="Test User",
    ),
    FakeUser(
        username="unconfirmed@example.com",
        email="unconfirmed@example.com",
        password="password123",
        confirmed=False,
        requires_password_change=False,
        sub="user-456",
        name="Unconfirmed User",
    ),
    FakeUser(
        username="newpassword@example.com",
        email="newpassword@example.com",
        password="oldpassword",
        confirmed=True,
        requires_password_change=True,
        sub="user-789",
        name="New Password User",
    ),
]


class FakeIdentityProvider:
    """IdentityProvider implementation with a seeded, mutable user table."""

    def __init__(self, users: list[FakeUser] | None = None, clock=time.time):
        self.users = copy.deepcopy(users if users is not None else DEFAULT_USERS)
        self.clock = clock
        # challenge session id -> username
        self.sessions: dict[str, str] = {}
        self.calls: list[str] = []

    def _find(self, username: str) -> FakeUser | None:
        for user in self.users:
            if user.username == username or user.email == username:
                return user
        return None

    def issue_token(self, user: FakeUser, lifetime: int = TOKEN_LIFETIME) -> str:
        claims = {
            "sub": user.sub,
            "email": user.email,
            "cognito:username": user.username,
            "name": user.name,
            "exp": int(self.clock()) + lifetime,
        }
        return jwt.encode(claims, _SIGNING_KEY, algorithm="HS256")

    def _tokens(self, user: FakeUser, with_refresh: bool = True) -> TokenSet:
        return TokenSet(
            access_token=self.issue_token(user),
            id_token=self.issue_token(user),
            refresh_token=REFRESH_PREFIX + user.sub if with_refresh else None,
        )

    def sign_in(self, username: str, password: str) -> TokenSet | Challenge:
        self.calls.append("sign_in")
        if not username or not password:
            raise AuthError(AuthErrorKind.MISCONFIGURED_PROVIDER)
        user = self._find(username)
        if user is None:
            raise AuthError(AuthErrorKind.USER_NOT_FOUND)
        if not user.confirmed:
            raise AuthError(AuthErrorKind.ACCOUNT_UNCONFIRMED)
        if user.password != password:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

        if user.requires_password_change:
            session = f"session-{secrets.token_urlsafe(16)}"
            self.sessions[session] = user.username
            parameters = {
                "USERNAME": user.username,
                "userAttributes": json.dumps({"email": user.email}),
            }
            return Challenge(
                name=NEW_PASSWORD_REQUIRED,
                session=session,
                username=resolve_challenge_username(parameters, username),
                parameters=parameters,
            )
        return self._tokens(user)

    def respond_to_new_password_challenge(
        self, session: str, new_password: str, username: str | None = None
    ) -> TokenSet:
        validate_new_password(new_password)
        self.calls.append("respond_to_new_password_challenge")
        session_username = self.sessions.get(session) if session else None
        if session_username is None:
            raise AuthError(AuthErrorKind.INVALID_CHALLENGE_SESSION)
        user = self._find(username or session_username)
        if user is None:
            raise AuthError(AuthErrorKind.USER_NOT_FOUND)

        user.password = new_password
        user.requires_password_change = False
        del self.sessions[session]
        return self._tokens(user)

    def refresh(self, refresh_token: str, username: str | None = None) -> TokenSet:
        self.calls.append("refresh")
        if not refresh_token or not refresh_token.startswith(REFRESH_PREFIX):
            raise AuthError(AuthErrorKind.REFRESH_TOKEN_INVALID)
        sub = refresh_token[len(REFRESH_PREFIX):]
        for user in self.users:
            if user.sub == sub:
                # existing refresh token stays in use
                return self._tokens(user, with_refresh=False)
        raise AuthError(AuthErrorKind.REFRESH_TOKEN_INVALID)
