# src/recovery_companion/models/__init__.py
"""SQLAlchemy models for the sponsor sharing core."""

from .secure_item import SecureItem
from .shared_entry import SponsorSharedEntry
from .sponsor_connection import SponsorConnection

__all__ = [
    "SecureItem",
    "SponsorConnection",
    "SponsorSharedEntry",
]
