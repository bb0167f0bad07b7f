"""
Cognito sign-in, forced password change, sign-out and session endpoints.

- /signin authenticates with username/password. On success the tokens are
  encrypted into HttpOnly cookies; when Cognito demands a new password the
  challenge (name, session, username) is returned instead and no cookie is set.
- /change-password answers the NEW_PASSWORD_REQUIRED challenge and signs in.
- /signout clears the token cookies.
- /session returns the current session or null.
- sign_in_flow / change_password_flow are shared with the RPC procedures.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from cognito import IdentityProvider
from errors import AuthError
from schemas import AppSession, ChangePasswordRequest, Challenge, SignInRequest
from session import SessionStore, get_session, get_session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth")


def get_identity_provider(request: Request) -> IdentityProvider:
    """FastAPI dependency: the provider instance created with the app."""
    return request.app.state.identity_provider


def sign_in_flow(
    provider: IdentityProvider,
    store: SessionStore,
    username: str,
    password: str,
) -> dict:
    result = provider.sign_in(username, password)
    if isinstance(result, Challenge):
        logger.info("Sign-in for %s requires %s", result.username, result.name)
        return {
            "success": False,
            "requiresPasswordChange": True,
            "challenge": {
                "name": result.name,
                "session": result.session,
                "username": result.username,
            },
        }
    session = store.save(result)
    return {"success": True, "user": session.user.model_dump()}


def change_password_flow(
    provider: IdentityProvider,
    store: SessionStore,
    session: str,
    new_password: str,
    username: str | None = None,
) -> dict:
    tokens = provider.respond_to_new_password_challenge(session, new_password, username)
    app_session = store.save(tokens)
    return {"success": True, "user": app_session.user.model_dump()}


@router.post("/signin")
def signin(
    body: SignInRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
    store: SessionStore = Depends(get_session_store),
):
    """Sign in with username (email) and password."""
    if not body.username or not body.password:
        raise HTTPException(status_code=400, detail="Username and password are required")
    try:
        return sign_in_flow(provider, store, body.username, body.password)
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)


@router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
    store: SessionStore = Depends(get_session_store),
):
    """
    Set a new password for a user in the NEW_PASSWORD_REQUIRED state, using the
    challenge session returned by /signin, and start a session.
    """
    if not body.session or not body.new_password:
        raise HTTPException(status_code=400, detail="Session and new password are required")
    try:
        return change_password_flow(
            provider, store, body.session, body.new_password, body.username
        )
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)


@router.post("/signout")
def signout(store: SessionStore = Depends(get_session_store)):
    """Delete all token cookies. Always succeeds."""
    store.clear()
    return {"success": True}


@router.get("/session")
def current_session(session: AppSession | None = Depends(get_session)):
    """Return the current session, or null when not signed in."""
    return session.model_dump() if session else None
