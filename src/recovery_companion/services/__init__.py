# src/recovery_companion/services/__init__.py
"""Business logic services for sponsor pairing and sharing."""

from .codes import ConnectionCodeService
from .connections import SponseeConnectionStore
from .crypto import SponsorCryptoService
from .pairing import SponsorPairingService
from .secure_store import DatabaseSecureStore, MemorySecureStore, SecureStore
from .sharing import SponsorShareService
from .vault import ContentVault

__all__ = [
    "ConnectionCodeService",
    "ContentVault",
    "DatabaseSecureStore",
    "MemorySecureStore",
    "SecureStore",
    "SponseeConnectionStore",
    "SponsorCryptoService",
    "SponsorPairingService",
    "SponsorShareService",
]
