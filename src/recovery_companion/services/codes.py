"""Pairing code generation and validation.

Codes look like ``RC-A3B7K9``: six symbols from a 32-character alphabet that
leaves out the easily confused 0/O and 1/I. A code stays readable after it
expires so the user can still see and revoke it; callers check ``is_expired``.
"""

from __future__ import annotations

import logging
import os
import random
import re
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Final

from recovery_companion.core.settings import settings
from recovery_companion.db.time import ensure_aware, utcnow
from recovery_companion.schemas.sponsor import ConnectionCode
from recovery_companion.services.errors import InvalidCodeFormat, SponsorError, StorageFailure
from recovery_companion.services.secure_store import SecureStore

logger = logging.getLogger(__name__)

CODE_PREFIX: Final[str] = "RC-"
CODE_ALPHABET: Final[str] = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH: Final[int] = 6
CODE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^RC-[A-Z2-9]{6}$")

SPONSOR_CODE_KEY: Final[str] = "sponsor_connection_code"
SPONSOR_CODE_EXPIRY_KEY: Final[str] = "sponsor_code_expiry"


def _system_random() -> tuple[random.Random, bool]:
    """Return the best available random source and whether it is a CSPRNG."""
    try:
        os.urandom(1)
    except NotImplementedError:
        logger.warning(
            "No OS randomness source available; pairing codes fall back to a "
            "non-cryptographic PRNG and are easier to guess"
        )
        return random.Random(), False
    return secrets.SystemRandom(), True


def validate_code_format(code: object) -> bool:
    """Return True if ``code`` looks like ``RC-XXXXXX`` (case-insensitive)."""
    if not code or not isinstance(code, str):
        return False
    return CODE_PATTERN.match(code.upper()) is not None


def normalize_code(code: str) -> str:
    """Strip and upper-case a human-typed code, raising if it is malformed."""
    cleaned = code.strip().upper() if isinstance(code, str) else ""
    if not validate_code_format(cleaned):
        raise InvalidCodeFormat(f"Invalid pairing code: {code!r}")
    return cleaned


class ConnectionCodeService:
    """Issues, reads back and revokes the local party's pairing code."""

    def __init__(
        self,
        store: SecureStore,
        clock: Callable[[], datetime] = utcnow,
        validity_days: int | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._validity = timedelta(
            days=validity_days if validity_days is not None else settings.sponsor_code_validity_days
        )
        self._rng, self._strong_randomness = _system_random()

    @property
    def validity(self) -> timedelta:
        return self._validity

    def strong_randomness_available(self) -> bool:
        """Return False when codes are drawn from the weak fallback PRNG."""
        return self._strong_randomness

    def _random_part(self) -> str:
        return "".join(self._rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    def generate(self) -> ConnectionCode:
        """Create a new code, replacing any previous one.

        Raises:
            StorageFailure: If the code or its expiry could not be persisted
        """
        code = f"{CODE_PREFIX}{self._random_part()}"
        now = self._clock()
        expires_at = now + self._validity

        try:
            self._store.set(SPONSOR_CODE_KEY, code)
            self._store.set(SPONSOR_CODE_EXPIRY_KEY, expires_at.isoformat())
        except Exception as err:
            logger.error("Failed to persist pairing code: %s", err)
            try:
                self.revoke()
            except Exception:  # pragma: no cover - best effort cleanup
                logger.warning("Failed to clean up partially stored pairing code")
            if isinstance(err, StorageFailure):
                raise
            raise StorageFailure("Failed to persist pairing code") from err

        logger.info("Generated pairing code expiring at %s", expires_at.isoformat())
        return ConnectionCode(code=code, created_at=now, expires_at=expires_at, is_expired=False)

    def get_current(self) -> ConnectionCode | None:
        """Return the stored code with ``is_expired`` computed now, or None."""
        try:
            code = self._store.get(SPONSOR_CODE_KEY)
            expiry_str = self._store.get(SPONSOR_CODE_EXPIRY_KEY)
            if not code or not expiry_str:
                return None
            expires_at = ensure_aware(datetime.fromisoformat(expiry_str))
        except (SponsorError, ValueError, OSError) as err:
            logger.error("Failed to read pairing code: %s", err)
            return None

        return ConnectionCode(
            code=code,
            created_at=expires_at - self._validity,
            expires_at=expires_at,
            is_expired=self._clock() > expires_at,
        )

    def revoke(self) -> None:
        """Delete the code and its expiry; safe to call repeatedly."""
        self._store.delete(SPONSOR_CODE_KEY)
        self._store.delete(SPONSOR_CODE_EXPIRY_KEY)

    @staticmethod
    def validate_format(code: object) -> bool:
        return validate_code_format(code)
