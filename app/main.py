"""
Cognito cookie-session backend: sign-in, password challenge, session cookies,
protected pages, RPC procedures and the posts and todo demos.

Load .env in development only (production uses env vars directly). Add CORS,
the authorization gate, global exception handlers, optional DB init.
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env only in development; must run before config reads the environment
if os.getenv("ENV", "development").lower() == "development":
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import ENV, FRONTEND_URL, HOST, PORT, PROTECTED_PATH_PREFIX, SKIP_DB_INIT
from cognito import IdentityProvider, build_identity_provider
from database import init_db
from errors import AuthError, AuthErrorKind
from middleware import AuthGateMiddleware
from schemas import AppSession
from session import get_session
from auth import router as auth_router
from rpc import router as rpc_router

logger = logging.getLogger(__name__)


async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions; log and return generic 500. Never leak stack traces."""
    logging.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


async def auth_error_handler(request: Request, exc: AuthError):
    """AuthError escaping an RPC procedure: taxonomy code and message, never internals."""
    if exc.status_code >= 500:
        logger.error("Auth failure on %s: %s", request.url.path, exc.kind.value)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def health():
    return {"status": "ok"}


def private_home(session: AppSession | None = Depends(get_session)):
    """Protected landing page; the gate middleware has already checked the session."""
    if session is None:
        raise AuthError(AuthErrorKind.UNAUTHENTICATED)
    return session.model_dump()


def create_app(provider: IdentityProvider | None = None) -> FastAPI:
    """Build the application. Tests pass their own identity provider."""
    # Create DB tables if not skipping (production uses migrations)
    if not SKIP_DB_INIT:
        init_db()

    app = FastAPI(
        title="Cognito Session Backend",
        description="Cognito sign-in with encrypted cookie sessions and protected routes.",
    )
    app.state.identity_provider = provider or build_identity_provider()

    app.add_middleware(AuthGateMiddleware)
    # CORS: explicit origin, allow credentials (cookies). Never use "*" with cookies.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[FRONTEND_URL] if FRONTEND_URL else [],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.add_api_route("/health", health, methods=["GET"])
    app.add_api_route(PROTECTED_PATH_PREFIX, private_home, methods=["GET"])
    app.include_router(auth_router)
    app.include_router(rpc_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=HOST,
        port=PORT,
        reload=ENV == "development",
    )
