"""Sponsor pairing and encrypted sharing schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .base import WireModel

PAYLOAD_VERSION = 1


class ConnectionCode(BaseModel):
    """The local party's current pairing code."""

    code: str = Field(..., description="Pairing code in RC-XXXXXX form")
    created_at: datetime
    expires_at: datetime
    is_expired: bool = False


class SponseeConnection(WireModel):
    """A sponsee known to the local sponsor, as kept in secure storage."""

    id: str
    code: str
    name: str
    connected_at: datetime
    last_sync_at: datetime | None = None


class SponsorKeyPair(WireModel):
    """Base64 P-256 key pair: raw public point and PKCS8 private key."""

    public_key: str
    private_key: str


class EncryptedPayload(WireModel):
    """AES-GCM envelope: base64 IV and base64 ciphertext (tag appended)."""

    iv: str
    ciphertext: str


class SponsorInvitePayload(WireModel):
    """Sent by a sponsee to start a key exchange."""

    version: Literal[1] = PAYLOAD_VERSION
    code: str
    sponsee_name: str | None = None
    public_key: str
    created_at: datetime
    expires_at: datetime


class SponsorConfirmPayload(WireModel):
    """Returned by a sponsor to complete the key exchange."""

    version: Literal[1] = PAYLOAD_VERSION
    code: str
    sponsor_name: str | None = None
    public_key: str
    confirmed_at: datetime


class EntrySharePayload(WireModel):
    """One encrypted journal entry."""

    version: Literal[1] = PAYLOAD_VERSION
    code: str
    entry_id: str
    encrypted: EncryptedPayload
    sender_name: str | None = None
    created_at: datetime


class CommentSharePayload(WireModel):
    """One encrypted comment on a shared entry."""

    version: Literal[1] = PAYLOAD_VERSION
    code: str
    entry_id: str
    encrypted: EncryptedPayload
    sender_name: str | None = None
    created_at: datetime


SharePayload = (
    SponsorInvitePayload | SponsorConfirmPayload | EntrySharePayload | CommentSharePayload
)


class JournalEntry(BaseModel):
    """A decrypted journal entry handed over by the journaling feature."""

    id: str
    title: str | None = None
    body: str
    mood: int | None = None
    craving: int | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SharedEntryContent(WireModel):
    """Plaintext snapshot sealed inside an entry-share envelope."""

    title: str | None = None
    body: str
    mood: int | None = None
    craving: int | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: JournalEntry) -> SharedEntryContent:
        return cls(
            title=entry.title,
            body=entry.body,
            mood=entry.mood,
            craving=entry.craving,
            tags=list(entry.tags),
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )


class SharedCommentContent(WireModel):
    """Plaintext sealed inside a comment-share envelope."""

    comment: str
    created_at: datetime | None = None


class SharedEntryView(BaseModel):
    """A decrypted incoming entry, ready for display."""

    id: str
    entry_id: str
    title: str | None
    body: str
    mood: int | None
    craving: int | None
    tags: list[str]
    created_at: datetime
    shared_at: datetime


class SharedCommentView(BaseModel):
    """A decrypted comment attached to a shared entry."""

    id: str
    entry_id: str
    comment: str
    created_at: datetime


class ImportResult(BaseModel):
    """Counts reported by a batch import."""

    entries: int = 0
    comments: int = 0
    skipped: int = 0

    @property
    def imported(self) -> int:
        return self.entries + self.comments
