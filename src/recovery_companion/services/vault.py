"""Content-at-rest encryption for locally stored secrets."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from recovery_companion.core.settings import settings
from recovery_companion.services.errors import DecryptionFailed, StorageFailure

logger = logging.getLogger(__name__)


class ContentVault:
    """Encrypts strings before they touch disk.

    Used for connection shared keys, pending private keys and secure-store
    values. This is independent of the peer-to-peer envelope.
    """

    def __init__(self, key: str | bytes) -> None:
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key)

    @classmethod
    def from_settings(cls) -> ContentVault:
        """Build a vault from ``VAULT_SECRET``, falling back to ``VAULT_KEY_FILE``."""
        if settings.vault_secret:
            return cls(settings.vault_secret)
        return cls.from_key_file(Path(settings.vault_key_file))

    @classmethod
    def from_key_file(cls, path: Path) -> ContentVault:
        """Load the key stored at ``path``, creating it (mode 0600) on first use.

        Raises:
            StorageFailure: If the file cannot be written or holds an invalid key
        """
        try:
            key = path.read_text(encoding="ascii").strip()
        except FileNotFoundError:
            key = cls._create_key_file(path)
        except (OSError, UnicodeError) as err:
            raise StorageFailure(f"Cannot read vault key file {path}") from err

        try:
            return cls(key)
        except ValueError as err:
            raise StorageFailure(f"Vault key file {path} does not hold a valid key") from err

    @classmethod
    def _create_key_file(cls, path: Path) -> str:
        key = cls.generate_key()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            # Another process created it between our read and open.
            return path.read_text(encoding="ascii").strip()
        except OSError as err:
            raise StorageFailure(f"Cannot create vault key file {path}") from err
        with os.fdopen(fd, "w", encoding="ascii") as handle:
            handle.write(key)
        logger.warning("VAULT_SECRET is not set; stored a new vault key in %s", path)
        return key

    @staticmethod
    def generate_key() -> str:
        """Return a fresh key suitable for ``VAULT_SECRET``."""
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as err:
            raise DecryptionFailed("Stored secret could not be decrypted") from err
