"""Key/value rows backing the database secure store."""

from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recovery_companion.db.session import Base
from recovery_companion.db.time import utcnow


class SecureItem(Base):
    """A single secure-store entry; ``value`` is always a vault token."""

    __tablename__ = "secure_item"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)
