"""
Database engine and session. Supports SQLite (dev/test) and Postgres via DATABASE_URL.

Only the posts demo stores rows; authentication state lives in cookies.
get_db is the single dependency for DB access.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

# SQLite needs check_same_thread=False for FastAPI; Postgres does not
_engine_kwargs = {}
if DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
    # In-memory SQLite: one shared connection, otherwise each connection gets an empty DB
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        _engine_kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, **_engine_kwargs)
SessionLocal = sessionmaker(bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create tables for all models (development and tests; production uses migrations)."""
    import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency: yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
