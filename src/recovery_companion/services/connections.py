"""Sponsee list kept by a sponsor in secure storage.

The whole list is stored as one JSON value and rewritten on every mutation.
There is no record-level locking; concurrent writers get last-writer-wins,
which is acceptable for a single user on a single device.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Final

from pydantic import TypeAdapter, ValidationError

from recovery_companion.db.time import utcnow
from recovery_companion.schemas.sponsor import SponseeConnection
from recovery_companion.services.errors import ConnectionNotFound, SponsorError, StorageFailure
from recovery_companion.services.secure_store import SecureStore

logger = logging.getLogger(__name__)

SPONSEE_CODES_KEY: Final[str] = "sponsee_connection_codes"

_LIST_ADAPTER = TypeAdapter(list[SponseeConnection])


class SponseeConnectionStore:
    """CRUD over the sponsor's list of sponsee connections."""

    def __init__(self, store: SecureStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def _read(self) -> list[SponseeConnection]:
        raw = self._store.get(SPONSEE_CODES_KEY)
        if not raw:
            return []
        return _LIST_ADAPTER.validate_json(raw)

    def _write(self, connections: list[SponseeConnection]) -> None:
        data = [connection.to_wire() for connection in connections]
        try:
            self._store.set(SPONSEE_CODES_KEY, json.dumps(data))
        except StorageFailure:
            raise
        except Exception as err:
            raise StorageFailure("Failed to persist sponsee connections") from err

    def _read_for_update(self) -> list[SponseeConnection]:
        try:
            return self._read()
        except (SponsorError, ValidationError, ValueError) as err:
            raise StorageFailure("Stored sponsee connections are unreadable") from err

    def list(self) -> list[SponseeConnection]:
        """Return all connections; an unreadable store reads as empty."""
        try:
            return self._read()
        except (SponsorError, ValidationError, ValueError) as err:
            logger.error("Failed to get sponsee connections: %s", err)
            return []

    def add(self, code: str, name: str) -> SponseeConnection:
        """Register a sponsee. Duplicate codes are the caller's concern."""
        connection = SponseeConnection(
            id=str(uuid.uuid4()),
            code=code,
            name=name,
            connected_at=self._clock(),
        )
        existing = self._read_for_update()
        existing.append(connection)
        self._write(existing)
        logger.info("Added sponsee connection %s", connection.id)
        return connection

    def get_by_id(self, connection_id: str) -> SponseeConnection | None:
        return next((c for c in self.list() if c.id == connection_id), None)

    def _replace(self, connection_id: str, **changes: object) -> SponseeConnection:
        connections = self._read_for_update()
        for index, connection in enumerate(connections):
            if connection.id == connection_id:
                updated = connection.model_copy(update=changes)
                connections[index] = updated
                self._write(connections)
                return updated
        raise ConnectionNotFound(f"No sponsee connection with id {connection_id!r}")

    def update_name(self, connection_id: str, name: str) -> SponseeConnection:
        """Rename a sponsee.

        Raises:
            ConnectionNotFound: If no connection has ``connection_id``
        """
        return self._replace(connection_id, name=name)

    def mark_synced(self, connection_id: str, at: datetime | None = None) -> SponseeConnection:
        """Record when data from this sponsee was last received."""
        return self._replace(connection_id, last_sync_at=at or self._clock())

    def remove(self, connection_id: str) -> None:
        """Remove a sponsee; removing an unknown id is a no-op."""
        connections = self._read_for_update()
        remaining = [c for c in connections if c.id != connection_id]
        if len(remaining) != len(connections):
            logger.info("Removed sponsee connection %s", connection_id)
        self._write(remaining)
