"""
Cognito user-pool client: password sign-in, NEW_PASSWORD_REQUIRED challenge, token refresh.

Calls the Cognito Identity Provider JSON API directly with requests (the
unauthenticated InitiateAuth / RespondToAuthChallenge actions need no AWS
credentials). Cognito error types are mapped to AuthErrorKind here and
nowhere else.

- sign_in returns a TokenSet, or a Challenge when a password change is required.
- respond_to_new_password_challenge finishes the challenge and returns tokens.
- refresh trades a refresh token for new access/id tokens.
- Confidential app clients get SECRET_HASH = base64(HMAC-SHA256(secret, username + client_id)).
"""
import base64
import hashlib
import hmac
import json
import logging
from typing import Protocol, runtime_checkable

import requests

from config import (
    AUTH_PROVIDER,
    COGNITO_CLIENT_ID,
    COGNITO_CLIENT_SECRET,
    COGNITO_ENDPOINT,
    COGNITO_USER_POOL_ID,
    MIN_PASSWORD_LENGTH,
    PROVIDER_REQUEST_TIMEOUT,
)
from errors import AuthError, AuthErrorKind
from schemas import NEW_PASSWORD_REQUIRED, Challenge, TokenSet

logger = logging.getLogger(__name__)

_TARGET_PREFIX = "AWSCognitoIdentityProviderService."

# Per-operation translation of Cognito error types
_SIGN_IN_ERRORS = {
    "InvalidParameterException": (
        AuthErrorKind.MISCONFIGURED_PROVIDER,
        "USER_PASSWORD_AUTH is not enabled. Enable ALLOW_USER_PASSWORD_AUTH on the Cognito app client.",
    ),
    "NotAuthorizedException": (AuthErrorKind.INVALID_CREDENTIALS, None),
    "UserNotFoundException": (AuthErrorKind.USER_NOT_FOUND, None),
    "UserNotConfirmedException": (AuthErrorKind.ACCOUNT_UNCONFIRMED, None),
    "PasswordResetRequiredException": (AuthErrorKind.INVALID_CREDENTIALS, None),
    "ResourceNotFoundException": (AuthErrorKind.MISCONFIGURED_PROVIDER, None),
}
_CHALLENGE_ERRORS = {
    "InvalidPasswordException": (AuthErrorKind.PASSWORD_POLICY_VIOLATION, None),
    "NotAuthorizedException": (AuthErrorKind.INVALID_CHALLENGE_SESSION, None),
    "CodeMismatchException": (AuthErrorKind.INVALID_CHALLENGE_SESSION, None),
    "ExpiredCodeException": (AuthErrorKind.INVALID_CHALLENGE_SESSION, None),
    "UserNotFoundException": (AuthErrorKind.USER_NOT_FOUND, None),
    "InvalidParameterException": (AuthErrorKind.INVALID_CHALLENGE_SESSION, None),
    "ResourceNotFoundException": (AuthErrorKind.MISCONFIGURED_PROVIDER, None),
}
_REFRESH_ERRORS = {
    "NotAuthorizedException": (AuthErrorKind.REFRESH_TOKEN_INVALID, None),
    "UserNotFoundException": (AuthErrorKind.REFRESH_TOKEN_INVALID, None),
    "InvalidParameterException": (AuthErrorKind.REFRESH_TOKEN_INVALID, None),
    "ResourceNotFoundException": (AuthErrorKind.MISCONFIGURED_PROVIDER, None),
}


@runtime_checkable
class IdentityProvider(Protocol):
    """What the session layer needs from an identity provider."""

    def sign_in(self, username: str, password: str) -> TokenSet | Challenge:
        ...

    def respond_to_new_password_challenge(
        self, session: str, new_password: str, username: str | None = None
    ) -> TokenSet:
        ...

    def refresh(self, refresh_token: str, username: str | None = None) -> TokenSet:
        ...


def secret_hash(username: str, client_id: str, client_secret: str) -> str:
    """SECRET_HASH parameter required by app clients that have a client secret."""
    digest = hmac.new(
        client_secret.encode(), (username + client_id).encode(), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode()


def validate_new_password(new_password: str | None) -> None:
    """Reject obviously invalid passwords before they reach the provider."""
    if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
        raise AuthError(
            AuthErrorKind.PASSWORD_POLICY_VIOLATION,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
        )


def resolve_challenge_username(parameters: dict | None, fallback: str) -> str:
    """
    Username to send back with the challenge answer: the provider's USERNAME,
    else the email inside userAttributes (a JSON string), else what the user typed.
    """
    parameters = parameters or {}
    if parameters.get("USERNAME"):
        return parameters["USERNAME"]
    attributes = parameters.get("userAttributes")
    if attributes:
        try:
            if isinstance(attributes, str):
                attributes = json.loads(attributes)
        except ValueError:
            logger.warning("Could not parse userAttributes in challenge parameters")
            return fallback
        if isinstance(attributes, dict) and attributes.get("email"):
            return attributes["email"]
    return fallback


class CognitoError(Exception):
    """Raw error returned by the Cognito API, before translation."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


def _translate(exc: CognitoError, table: dict, operation: str) -> AuthError:
    logger.warning("Cognito %s failed: %s", operation, exc.code)
    kind, message = table.get(exc.code, (AuthErrorKind.PROVIDER_FAILURE, None))
    return AuthError(kind, message)


def _token_set(result: dict | None) -> TokenSet:
    if not result or not result.get("AccessToken") or not result.get("IdToken"):
        raise AuthError(AuthErrorKind.PROVIDER_FAILURE)
    return TokenSet(
        access_token=result["AccessToken"],
        id_token=result["IdToken"],
        refresh_token=result.get("RefreshToken"),
    )


class CognitoClient:
    """IdentityProvider backed by a Cognito user pool app client."""

    def __init__(
        self,
        user_pool_id: str,
        client_id: str,
        client_secret: str | None = None,
        endpoint: str = COGNITO_ENDPOINT,
        http: requests.Session | None = None,
        timeout=PROVIDER_REQUEST_TIMEOUT,
    ):
        self.user_pool_id = user_pool_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.endpoint = endpoint
        self.http = http or requests.Session()
        self.timeout = timeout

    def _require_configured(self) -> None:
        if not self.user_pool_id or not self.client_id:
            raise AuthError(
                AuthErrorKind.MISCONFIGURED_PROVIDER,
                "Cognito is not configured. Set COGNITO_USER_POOL_ID and COGNITO_CLIENT_ID.",
            )

    def _call(self, action: str, payload: dict) -> dict:
        """POST one action to the Cognito JSON API; raise CognitoError on an error body."""
        try:
            resp = self.http.post(
                self.endpoint,
                data=json.dumps(payload),
                headers={
                    "Content-Type": "application/x-amz-json-1.1",
                    "X-Amz-Target": _TARGET_PREFIX + action,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Cognito %s request failed: %s", action, exc)
            raise AuthError(AuthErrorKind.PROVIDER_FAILURE) from exc
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            error_type = data.get("__type") or resp.headers.get("x-amzn-ErrorType", "")
            # "com.amazonaws...#NotAuthorizedException" -> "NotAuthorizedException"
            code = error_type.split("#")[-1].split(":")[0] or "UnknownError"
            raise CognitoError(code, data.get("message") or data.get("Message") or "")
        return data

    def _with_secret_hash(self, params: dict, username: str | None) -> dict:
        if self.client_secret:
            if not username:
                raise AuthError(
                    AuthErrorKind.INVALID_CHALLENGE_SESSION,
                    "Username is required for this app client.",
                )
            params["SECRET_HASH"] = secret_hash(username, self.client_id, self.client_secret)
        return params

    def sign_in(self, username: str, password: str) -> TokenSet | Challenge:
        self._require_configured()
        auth_params = self._with_secret_hash(
            {"USERNAME": username, "PASSWORD": password}, username
        )
        try:
            data = self._call(
                "InitiateAuth",
                {
                    "ClientId": self.client_id,
                    "AuthFlow": "USER_PASSWORD_AUTH",
                    "AuthParameters": auth_params,
                },
            )
        except CognitoError as exc:
            raise _translate(exc, _SIGN_IN_ERRORS, "sign-in") from exc

        if data.get("AuthenticationResult"):
            return _token_set(data["AuthenticationResult"])

        challenge_name = data.get("ChallengeName")
        if challenge_name == NEW_PASSWORD_REQUIRED and data.get("Session"):
            parameters = data.get("ChallengeParameters") or {}
            return Challenge(
                name=challenge_name,
                session=data["Session"],
                username=resolve_challenge_username(parameters, username),
                parameters=parameters,
            )

        logger.error("Cognito sign-in returned no tokens (challenge=%s)", challenge_name)
        if challenge_name:
            raise AuthError(
                AuthErrorKind.PROVIDER_FAILURE,
                f"Authentication requires an additional challenge: {challenge_name}",
            )
        raise AuthError(AuthErrorKind.PROVIDER_FAILURE)

    def respond_to_new_password_challenge(
        self, session: str, new_password: str, username: str | None = None
    ) -> TokenSet:
        validate_new_password(new_password)
        if not session:
            raise AuthError(AuthErrorKind.INVALID_CHALLENGE_SESSION)
        self._require_configured()

        responses = {"NEW_PASSWORD": new_password}
        if username:
            responses["USERNAME"] = username
        responses = self._with_secret_hash(responses, username)
        try:
            data = self._call(
                "RespondToAuthChallenge",
                {
                    "ClientId": self.client_id,
                    "ChallengeName": NEW_PASSWORD_REQUIRED,
                    "Session": session,
                    "ChallengeResponses": responses,
                },
            )
        except CognitoError as exc:
            raise _translate(exc, _CHALLENGE_ERRORS, "password challenge") from exc
        return _token_set(data.get("AuthenticationResult"))

    def refresh(self, refresh_token: str, username: str | None = None) -> TokenSet:
        if not refresh_token:
            raise AuthError(AuthErrorKind.REFRESH_TOKEN_INVALID)
        self._require_configured()

        auth_params = {"REFRESH_TOKEN": refresh_token}
        if self.client_secret:
            # Cognito hashes with the user's sub/username for refresh as well
            if not username:
                raise AuthError(AuthErrorKind.REFRESH_TOKEN_INVALID)
            auth_params["SECRET_HASH"] = secret_hash(
                username, self.client_id, self.client_secret
            )
        try:
            data = self._call(
                "InitiateAuth",
                {
                    "ClientId": self.client_id,
                    "AuthFlow": "REFRESH_TOKEN_AUTH",
                    "AuthParameters": auth_params,
                },
            )
        except CognitoError as exc:
            raise _translate(exc, _REFRESH_ERRORS, "refresh") from exc
        return _token_set(data.get("AuthenticationResult"))


def build_identity_provider() -> IdentityProvider:
    """Create the provider selected by AUTH_PROVIDER."""
    if AUTH_PROVIDER == "mock":
        from mock_cognito import FakeIdentityProvider

        logger.info("Using in-process fake identity provider")
        return FakeIdentityProvider()
    return CognitoClient(
        user_pool_id=COGNITO_USER_POOL_ID,
        client_id=COGNITO_CLIENT_ID,
        client_secret=COGNITO_CLIENT_SECRET,
    )
