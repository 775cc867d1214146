"""Engine and session factory for the local row store.

The store is a single SQLite file by default. Connection rows, shared payload
history and secure-store items all live in the same database.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from recovery_companion.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base for sponsor tables."""


# Models register themselves on Base.metadata at import time.
import recovery_companion.models  # noqa: E402,F401

engine = create_engine(
    settings.database_url,
    echo=settings.sql_debug,
    connect_args={"check_same_thread": False} if settings.is_sqlite else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Open a session, roll back anything left uncommitted and close it."""
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create any missing sponsor tables."""
    Base.metadata.create_all(bind=engine)
