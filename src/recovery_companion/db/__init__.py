"""Row store: engine, sessions and clock helpers."""

from .session import Base, SessionLocal, create_tables, session_scope

__all__ = ["Base", "SessionLocal", "create_tables", "session_scope"]
