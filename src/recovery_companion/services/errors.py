"""Exceptions raised by the sponsor pairing and sharing services."""

from __future__ import annotations


class SponsorError(RuntimeError):
    """Base exception for sponsor connection and sharing failures."""


class InvalidCodeFormat(SponsorError, ValueError):
    """Raised when a pairing code does not match ``RC-XXXXXX``."""


class InviteExpired(InvalidCodeFormat):
    """Raised when an invite is accepted after its code expired."""


class PayloadUnparseable(SponsorError, ValueError):
    """Raised when an operation requires a specific payload kind and gets none.

    The codec itself returns ``None`` for unparseable input; this error is only
    raised by callers that cannot continue without a payload.
    """


class ConnectionNotFound(SponsorError, LookupError):
    """Raised when a connection id or code does not resolve to a connection."""


class ConnectionNotReady(SponsorError):
    """Raised when a connection has no shared key yet."""


class DecryptionFailed(SponsorError):
    """Raised on a wrong key, tampered ciphertext or IV, or malformed envelope."""


class StorageFailure(SponsorError):
    """Raised when the secure store or the row store fails."""


class CryptoUnavailable(SponsorError):
    """Raised when ECDH P-256 or AES-GCM is not supported by the backend."""
