"""Models describing a sponsor/sponsee pairing on this device."""

from __future__ import annotations

from datetime import datetime
from typing import Final

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recovery_companion.db.session import Base
from recovery_companion.db.time import utcnow

ROLE_SPONSEE: Final[str] = "sponsee"
ROLE_SPONSOR: Final[str] = "sponsor"

STATUS_PENDING: Final[str] = "pending"
STATUS_CONNECTED: Final[str] = "connected"


class SponsorConnection(Base):
    """One side of a sponsor relationship.

    ``role`` is the local party's role: a sponsee creates a ``pending`` row when
    it issues an invite, a sponsor creates a ``connected`` row when it accepts
    one. Key material is never stored in the clear: ``shared_key`` and
    ``pending_private_key`` hold vault tokens.
    """

    __tablename__ = "sponsor_connections"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING)
    invite_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    own_public_key: Mapped[str] = mapped_column(Text, nullable=False)
    peer_public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    shared_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    pending_private_key: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    @property
    def is_ready(self) -> bool:
        """Return True once the key exchange has produced a shared key."""
        return self.shared_key is not None
