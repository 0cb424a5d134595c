"""Database engine and session wiring."""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from wanderbuddy.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Model modules register their tables on Base.metadata at import time.
import wanderbuddy.models  # noqa: E402,F401

_is_sqlite = settings.effective_database_url.startswith("sqlite")

engine = create_engine(
    settings.effective_database_url,
    pool_pre_ping=not _is_sqlite,
    echo=settings.sql_debug,
    # The change feed publishes from request threads; SQLite must allow that.
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)

# Services hand committed rows back to the routers for serialization.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for jobs running outside a request; rolls back on error."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
