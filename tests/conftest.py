# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from recovery_companion.db.session import Base
from recovery_companion.schemas.sponsor import JournalEntry
from recovery_companion.services import (
    ConnectionCodeService,
    ContentVault,
    MemorySecureStore,
    SponsorPairingService,
    SponsorShareService,
)

TEST_DB_URL = "sqlite://"
SPONSEE_USER_ID = "sponsee-user"
SPONSOR_USER_ID = "sponsor-user"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[Callable[[], Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        # Services commit, so wipe every table to keep tests independent.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def db_session(session_factory: Callable[[], Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 9, 30, tzinfo=UTC))


@pytest.fixture()
def vault() -> ContentVault:
    return ContentVault(ContentVault.generate_key())


@pytest.fixture()
def secure_store() -> MemorySecureStore:
    return MemorySecureStore()


@pytest.fixture()
def code_service(secure_store: MemorySecureStore, clock: FrozenClock) -> ConnectionCodeService:
    return ConnectionCodeService(secure_store, clock=clock, validity_days=7)


@pytest.fixture()
def sponsee_pairing(
    db_session: Session,
    vault: ContentVault,
    code_service: ConnectionCodeService,
    clock: FrozenClock,
) -> SponsorPairingService:
    return SponsorPairingService(db_session, SPONSEE_USER_ID, vault, code_service, clock=clock)


@pytest.fixture()
def sponsor_pairing(
    db_session: Session,
    vault: ContentVault,
    clock: FrozenClock,
) -> SponsorPairingService:
    # The sponsor's device has its own secure store and pairing code.
    codes = ConnectionCodeService(MemorySecureStore(), clock=clock)
    return SponsorPairingService(db_session, SPONSOR_USER_ID, vault, codes, clock=clock)


@pytest.fixture()
def sponsee_sharing(db_session: Session, vault: ContentVault, clock: FrozenClock) -> SponsorShareService:
    return SponsorShareService(db_session, SPONSEE_USER_ID, vault, clock=clock)


@pytest.fixture()
def sponsor_sharing(db_session: Session, vault: ContentVault, clock: FrozenClock) -> SponsorShareService:
    return SponsorShareService(db_session, SPONSOR_USER_ID, vault, clock=clock)


@pytest.fixture()
def paired(
    sponsee_pairing: SponsorPairingService,
    sponsor_pairing: SponsorPairingService,
) -> dict[str, str]:
    """Run a full invite/connect/confirm exchange and return both connection ids."""
    invite, code = sponsee_pairing.create_invite("Sam")
    confirm = sponsor_pairing.connect_as_sponsor(invite, "Alex")
    sponsee_connection = sponsee_pairing.confirm_invite(confirm)
    sponsor_connection = sponsor_pairing.get_connection_by_code(code)
    assert sponsor_connection is not None
    return {
        "code": code,
        "sponsee_connection_id": sponsee_connection.id,
        "sponsor_connection_id": sponsor_connection.id,
    }


def make_entry(entry_id: str = "entry-1", **overrides: object) -> JournalEntry:
    data: dict[str, object] = {
        "id": entry_id,
        "title": "Rough morning",
        "body": "Called my sponsor before the meeting. Grateful tonight.",
        "mood": 6,
        "craving": 3,
        "tags": ["gratitude", "meeting"],
        "created_at": datetime(2026, 2, 28, 21, 0, tzinfo=UTC),
        "updated_at": datetime(2026, 2, 28, 21, 5, tzinfo=UTC),
    }
    data.update(overrides)
    return JournalEntry.model_validate(data)
