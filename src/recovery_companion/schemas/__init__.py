"""Pydantic schemas for sponsor pairing, sharing and summaries."""

from .sponsor import (
    CommentSharePayload,
    ConnectionCode,
    EncryptedPayload,
    EntrySharePayload,
    ImportResult,
    JournalEntry,
    SharedCommentContent,
    SharedCommentView,
    SharedEntryContent,
    SharedEntryView,
    SharePayload,
    SponseeConnection,
    SponsorConfirmPayload,
    SponsorInvitePayload,
    SponsorKeyPair,
)
from .summary import SponseeProfile, SponseeStats, SponsorShareData

__all__ = [
    "CommentSharePayload",
    "ConnectionCode",
    "EncryptedPayload",
    "EntrySharePayload",
    "ImportResult",
    "JournalEntry",
    "SharePayload",
    "SharedCommentContent",
    "SharedCommentView",
    "SharedEntryContent",
    "SharedEntryView",
    "SponseeConnection",
    "SponseeProfile",
    "SponseeStats",
    "SponsorConfirmPayload",
    "SponsorInvitePayload",
    "SponsorKeyPair",
    "SponsorShareData",
]
