"""
Application configuration from environment variables.

Load with python-dotenv in main so env vars are available before imports.
Validates critical secrets at module load; missing values raise RuntimeError.
"""
import os

# Environment: development | production | test (affects .env loading, cookies, provider)
ENV = os.getenv("ENV", "development").lower()

# --- Required (raise if missing) ---
# Shared secret for the cookie cipher key; read once, never reloaded
AUTH_SECRET = os.getenv("AUTH_SECRET")

for name, val in [
    ("AUTH_SECRET", AUTH_SECRET),
]:
    if not val or not str(val).strip():
        raise RuntimeError(f"Required env var {name} is missing or empty")

# --- Identity provider (Cognito) ---
COGNITO_USER_POOL_ID = os.getenv("COGNITO_USER_POOL_ID", "")
COGNITO_CLIENT_ID = os.getenv("COGNITO_CLIENT_ID", "")
# Only set for confidential app clients; enables SECRET_HASH
COGNITO_CLIENT_SECRET = os.getenv("COGNITO_CLIENT_SECRET") or None
AWS_REGION = os.getenv("AWS_REGION", "ap-northeast-1")
COGNITO_ENDPOINT = os.getenv(
    "COGNITO_ENDPOINT", f"https://cognito-idp.{AWS_REGION}.amazonaws.com/"
)

# cognito | mock; mock is the in-process fake used by tests and local demos
AUTH_PROVIDER = os.getenv("AUTH_PROVIDER", "mock" if ENV == "test" else "cognito").lower()

# Request timeouts (connect, read) in seconds
PROVIDER_REQUEST_TIMEOUT = (5, 30)

# --- Session cookies ---
ACCESS_TOKEN_COOKIE_NAME = "access_token"
ID_TOKEN_COOKIE_NAME = "id_token"
REFRESH_TOKEN_COOKIE_NAME = "refresh_token"

ACCESS_TOKEN_MAX_AGE = 60 * 60  # 1 hour, matches Cognito access/id token lifetime
REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 30  # 30 days

# Secure cookie flag (defaults to on in production over HTTPS)
SECURE_COOKIES = os.getenv(
    "SECURE_COOKIES", "true" if ENV == "production" else "false"
).lower() in ("1", "true", "yes")

# --- Route protection ---
PROTECTED_PATH_PREFIX = os.getenv("PROTECTED_PATH_PREFIX", "/private").rstrip("/")
SIGNIN_PATH = os.getenv("SIGNIN_PATH", "/signin")

# Minimum length accepted for a new password before calling the provider
MIN_PASSWORD_LENGTH = 8

# --- Optional with defaults ---
# Frontend URL allowed by CORS; cookies require an explicit origin
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Database URL (SQLite default; use Postgres URL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./app.db")

# Skip create_all at startup (set in production when using migrations)
SKIP_DB_INIT = os.getenv("SKIP_DB_INIT", "false").lower() in ("1", "true", "yes")

# Dev server bind address (python main.py)
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))
