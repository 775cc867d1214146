"""Sponsor pairing: invite, accept and confirm a key exchange.

Flow::

    sponsee                              sponsor
    create_invite()  --- RCINVITE --->   connect_as_sponsor()
    confirm_invite() <--- RCCONFIRM ---  (shared key stored)
    (shared key stored)

The sponsee keeps its private key, vault-encrypted, only until the confirm
payload arrives. The sponsor never stores a private key at all.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import Select, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recovery_companion.db.time import ensure_aware, utcnow
from recovery_companion.models import SponsorConnection, SponsorSharedEntry
from recovery_companion.models.sponsor_connection import (
    ROLE_SPONSEE,
    ROLE_SPONSOR,
    STATUS_CONNECTED,
    STATUS_PENDING,
)
from recovery_companion.schemas.sponsor import SponsorConfirmPayload, SponsorInvitePayload
from recovery_companion.services.codes import ConnectionCodeService, normalize_code
from recovery_companion.services.crypto import SponsorCryptoService
from recovery_companion.services.errors import (
    ConnectionNotFound,
    InviteExpired,
    PayloadUnparseable,
    StorageFailure,
)
from recovery_companion.services.payloads import (
    create_confirm_payload,
    create_invite_payload,
    parse_confirm_payload,
    parse_invite_payload,
)
from recovery_companion.services.vault import ContentVault
from recovery_companion.utils.ids import generate_id

logger = logging.getLogger(__name__)


class SponsorPairingService:
    """Creates and completes sponsor connections for one local user."""

    def __init__(
        self,
        session: Session,
        user_id: str,
        vault: ContentVault,
        codes: ConnectionCodeService,
        crypto: SponsorCryptoService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._user_id = user_id
        self._vault = vault
        self._codes = codes
        self._crypto = crypto or SponsorCryptoService()
        self._clock = clock

    def _commit(self) -> None:
        try:
            self._session.commit()
        except SQLAlchemyError as err:
            self._session.rollback()
            raise StorageFailure("Failed to save sponsor connection") from err

    def _scalars(self, stmt: Select) -> list[SponsorConnection]:
        try:
            return list(self._session.scalars(stmt))
        except SQLAlchemyError as err:
            self._session.rollback()
            raise StorageFailure("Failed to read sponsor connections") from err

    # --- Queries --------------------------------------------------------------------
    def list_connections(self) -> list[SponsorConnection]:
        """Return every connection for the user, newest first."""
        stmt = (
            select(SponsorConnection)
            .where(SponsorConnection.user_id == self._user_id)
            .order_by(SponsorConnection.created_at.desc())
        )
        return self._scalars(stmt)

    def my_sponsor(self) -> SponsorConnection | None:
        return next(
            (
                c
                for c in self.list_connections()
                if c.role == ROLE_SPONSEE and c.status == STATUS_CONNECTED
            ),
            None,
        )

    def my_sponsees(self) -> list[SponsorConnection]:
        return [
            c
            for c in self.list_connections()
            if c.role == ROLE_SPONSOR and c.status == STATUS_CONNECTED
        ]

    def pending_invites(self) -> list[SponsorConnection]:
        return [
            c
            for c in self.list_connections()
            if c.role == ROLE_SPONSEE and c.status == STATUS_PENDING
        ]

    def get_connection(self, connection_id: str) -> SponsorConnection | None:
        stmt = select(SponsorConnection).where(
            SponsorConnection.id == connection_id,
            SponsorConnection.user_id == self._user_id,
        )
        return next(iter(self._scalars(stmt)), None)

    def get_connection_by_code(self, code: str) -> SponsorConnection | None:
        stmt = select(SponsorConnection).where(
            SponsorConnection.user_id == self._user_id,
            SponsorConnection.invite_code == code.strip().upper(),
        )
        return next(iter(self._scalars(stmt)), None)

    def get_shared_key(self, connection_id: str) -> str | None:
        """Return the decrypted shared key, or None if the exchange is incomplete."""
        connection = self.get_connection(connection_id)
        if connection is None or not connection.is_ready:
            return None
        return self._vault.decrypt(connection.shared_key)

    # --- Key exchange ---------------------------------------------------------------
    def create_invite(self, sponsee_name: str | None = None) -> tuple[str, str]:
        """Start pairing as a sponsee.

        Returns:
            Tuple of (invite payload string, pairing code)
        """
        code = self._codes.generate()
        key_pair = self._crypto.generate_key_pair()
        now = self._clock()

        connection = SponsorConnection(
            id=generate_id("sponsor"),
            user_id=self._user_id,
            role=ROLE_SPONSEE,
            status=STATUS_PENDING,
            invite_code=code.code,
            display_name=sponsee_name,
            own_public_key=key_pair.public_key,
            pending_private_key=self._vault.encrypt(key_pair.private_key),
            created_at=now,
            updated_at=now,
        )
        self._session.add(connection)
        self._commit()

        payload = create_invite_payload(
            SponsorInvitePayload(
                code=code.code,
                sponsee_name=sponsee_name,
                public_key=key_pair.public_key,
                created_at=code.created_at,
                expires_at=code.expires_at,
            )
        )
        logger.info("Created sponsor invite %s", connection.id)
        return payload, code.code

    def connect_as_sponsor(self, invite_text: str, sponsor_name: str | None = None) -> str:
        """Accept a sponsee's invite and return the confirm payload to send back.

        Raises:
            PayloadUnparseable: If ``invite_text`` is not an invite payload
            InvalidCodeFormat: If the invite carries a malformed code
            InviteExpired: If the invite's code has expired
        """
        invite = parse_invite_payload(invite_text)
        if invite is None:
            raise PayloadUnparseable("Invalid invite payload")
        code = normalize_code(invite.code)
        now = self._clock()
        if now > ensure_aware(invite.expires_at):
            raise InviteExpired(f"Invite {code} expired at {invite.expires_at.isoformat()}")

        key_pair = self._crypto.generate_key_pair()
        shared_key = self._crypto.derive_shared_key(key_pair.private_key, invite.public_key)

        # Accepting the same invite again (a lost confirm reply) rotates the
        # existing row's keys so only the newest confirm is ever valid.
        stmt = select(SponsorConnection).where(
            SponsorConnection.user_id == self._user_id,
            SponsorConnection.role == ROLE_SPONSOR,
            SponsorConnection.invite_code == code,
        )
        connection = next(iter(self._scalars(stmt)), None)
        if connection is None:
            connection = SponsorConnection(
                id=generate_id("sponsor"),
                user_id=self._user_id,
                role=ROLE_SPONSOR,
                invite_code=code,
                created_at=now,
            )
            self._session.add(connection)
        else:
            logger.info("Re-accepting invite on %s; replacing key material", connection.id)

        connection.status = STATUS_CONNECTED
        connection.display_name = invite.sponsee_name
        connection.own_public_key = key_pair.public_key
        connection.peer_public_key = invite.public_key
        connection.shared_key = self._vault.encrypt(shared_key)
        connection.updated_at = now
        self._commit()
        logger.info("Connected as sponsor on %s", connection.id)

        return create_confirm_payload(
            SponsorConfirmPayload(
                code=code,
                sponsor_name=sponsor_name,
                public_key=key_pair.public_key,
                confirmed_at=now,
            )
        )

    def confirm_invite(self, confirm_text: str) -> SponsorConnection:
        """Complete a pending invite with the sponsor's confirm payload.

        Raises:
            PayloadUnparseable: If ``confirm_text`` is not a confirm payload
            ConnectionNotFound: If no pending invite matches the payload's code
        """
        payload = parse_confirm_payload(confirm_text)
        if payload is None:
            raise PayloadUnparseable("Invalid confirmation payload")

        stmt = select(SponsorConnection).where(
            SponsorConnection.user_id == self._user_id,
            SponsorConnection.role == ROLE_SPONSEE,
            SponsorConnection.status == STATUS_PENDING,
            SponsorConnection.invite_code == payload.code.strip().upper(),
        )
        connection = next(iter(self._scalars(stmt)), None)
        if connection is None or connection.pending_private_key is None:
            raise ConnectionNotFound("No pending invite found for this code")

        private_key = self._vault.decrypt(connection.pending_private_key)
        shared_key = self._crypto.derive_shared_key(private_key, payload.public_key)

        connection.status = STATUS_CONNECTED
        connection.peer_public_key = payload.public_key
        connection.shared_key = self._vault.encrypt(shared_key)
        connection.pending_private_key = None
        connection.display_name = payload.sponsor_name or connection.display_name
        connection.updated_at = self._clock()
        self._commit()
        logger.info("Confirmed sponsor invite %s", connection.id)
        return connection

    def remove_connection(self, connection_id: str) -> None:
        """Delete a connection and every payload recorded against it."""
        connection = self.get_connection(connection_id)
        if connection is None:
            return
        self._session.execute(
            delete(SponsorSharedEntry).where(
                SponsorSharedEntry.connection_id == connection_id,
                SponsorSharedEntry.user_id == self._user_id,
            )
        )
        self._session.delete(connection)
        self._commit()
        logger.info("Removed sponsor connection %s", connection_id)

    def require_connection(self, connection_id: str) -> SponsorConnection:
        connection = self.get_connection(connection_id)
        if connection is None:
            raise ConnectionNotFound(f"No sponsor connection with id {connection_id!r}")
        return connection
