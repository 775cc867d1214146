"""Outbox/inbox rows for encrypted sponsor payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Final

from sqlalchemy import CHAR, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recovery_companion.db.session import Base
from recovery_companion.db.time import utcnow

DIRECTION_OUTGOING: Final[str] = "outgoing"
DIRECTION_INCOMING: Final[str] = "incoming"
DIRECTION_COMMENT: Final[str] = "comment"


class SponsorSharedEntry(Base):
    """A payload that was produced for, or received from, a connection.

    The stored ``payload`` is the exact wire string, so the row is still
    end-to-end encrypted at rest and can be re-shared verbatim.
    """

    __tablename__ = "sponsor_shared_entries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    connection_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sponsor_connections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    journal_entry_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    payload_digest: Mapped[str] = mapped_column(CHAR(64), nullable=False, index=True)  # sha256 hex

    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)
