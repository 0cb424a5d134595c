"""Database engine, sessions and time helpers."""

from .session import Base, SessionLocal, get_db, session_scope

__all__ = ["Base", "SessionLocal", "get_db", "session_scope"]
