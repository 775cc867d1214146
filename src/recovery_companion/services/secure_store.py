"""Secure key/value storage used for pairing codes and sponsee lists."""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recovery_companion.models import SecureItem
from recovery_companion.services.errors import StorageFailure
from recovery_companion.services.vault import ContentVault

logger = logging.getLogger(__name__)


class SecureStore(Protocol):
    """Minimal secure storage capability."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemorySecureStore:
    """In-process store for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items


class DatabaseSecureStore:
    """Secure store persisted in the ``secure_item`` table.

    Values are vault-encrypted before they are written. Each call uses its own
    session and commits before returning.
    """

    def __init__(self, session_factory: Callable[[], Session], vault: ContentVault) -> None:
        self._session_factory = session_factory
        self._vault = vault

    def get(self, key: str) -> str | None:
        try:
            with self._session_factory() as session:
                item = session.get(SecureItem, key)
                token = item.value if item is not None else None
        except SQLAlchemyError as err:
            raise StorageFailure(f"Failed to read secure item {key!r}") from err
        if token is None:
            return None
        return self._vault.decrypt(token)

    def set(self, key: str, value: str) -> None:
        token = self._vault.encrypt(value)
        try:
            with self._session_factory() as session:
                item = session.get(SecureItem, key)
                if item is None:
                    session.add(SecureItem(key=key, value=token))
                else:
                    item.value = token
                session.commit()
        except SQLAlchemyError as err:
            raise StorageFailure(f"Failed to write secure item {key!r}") from err

    def delete(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                item = session.get(SecureItem, key)
                if item is not None:
                    session.delete(item)
                    session.commit()
        except SQLAlchemyError as err:
            raise StorageFailure(f"Failed to delete secure item {key!r}") from err
