"""Encrypted sharing of journal entries and comments between connections.

Outgoing entries and comments are sealed under the connection's shared key,
recorded in ``sponsor_shared_entries`` and handed back as wire strings for
the user to send through any out-of-band channel. Pasted payloads are
classified line by line, decrypted, de-duplicated and recorded. A bad line
is counted as skipped and never aborts the rest of the batch.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recovery_companion.db.time import ensure_aware, utcnow
from recovery_companion.models import SponsorConnection, SponsorSharedEntry
from recovery_companion.models.shared_entry import (
    DIRECTION_COMMENT,
    DIRECTION_INCOMING,
    DIRECTION_OUTGOING,
)
from recovery_companion.schemas.sponsor import (
    CommentSharePayload,
    EntrySharePayload,
    ImportResult,
    JournalEntry,
    SharedCommentContent,
    SharedCommentView,
    SharedEntryContent,
    SharedEntryView,
)
from recovery_companion.services.crypto import SponsorCryptoService
from recovery_companion.services.errors import (
    ConnectionNotFound,
    ConnectionNotReady,
    DecryptionFailed,
    StorageFailure,
)
from recovery_companion.services.payloads import (
    create_comment_share_payload,
    create_entry_share_payload,
    decode_any,
    parse_comment_share_payload,
    parse_entry_share_payload,
    split_payloads,
)
from recovery_companion.services.vault import ContentVault
from recovery_companion.utils.ids import generate_id

logger = logging.getLogger(__name__)


def payload_digest(payload: str) -> str:
    """Return the SHA-256 hex digest used to index stored payloads."""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class SponsorShareService:
    """Share and import encrypted entries and comments for one local user."""

    def __init__(
        self,
        session: Session,
        user_id: str,
        vault: ContentVault,
        crypto: SponsorCryptoService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._user_id = user_id
        self._vault = vault
        self._crypto = crypto or SponsorCryptoService()
        self._clock = clock

    # --- Connection helpers ---------------------------------------------------------
    def _scalars(self, stmt: Select) -> list:
        try:
            return list(self._session.scalars(stmt))
        except SQLAlchemyError as err:
            self._session.rollback()
            raise StorageFailure("Failed to read shared payloads") from err

    def _connection_by_id(self, connection_id: str) -> SponsorConnection | None:
        stmt = select(SponsorConnection).where(
            SponsorConnection.id == connection_id,
            SponsorConnection.user_id == self._user_id,
        )
        return next(iter(self._scalars(stmt)), None)

    def _connection_by_code(self, code: str) -> SponsorConnection | None:
        """Return the connection for ``code``, preferring one that holds a key."""
        stmt = (
            select(SponsorConnection)
            .where(
                SponsorConnection.user_id == self._user_id,
                SponsorConnection.invite_code == code.strip().upper(),
            )
            .order_by(SponsorConnection.updated_at.desc())
        )
        candidates = self._scalars(stmt)
        return next((c for c in candidates if c.is_ready), next(iter(candidates), None))

    def _ready_connection(self, connection_id: str) -> tuple[SponsorConnection, str]:
        connection = self._connection_by_id(connection_id)
        if connection is None:
            raise ConnectionNotFound(f"No sponsor connection with id {connection_id!r}")
        if not connection.is_ready:
            raise ConnectionNotReady("Sponsor connection not ready")
        return connection, self._vault.decrypt(connection.shared_key)

    def _shared_key_for(self, connection_id: str) -> str | None:
        connection = self._connection_by_id(connection_id)
        if connection is None or not connection.is_ready:
            return None
        return self._vault.decrypt(connection.shared_key)

    def _record(
        self,
        connection_id: str,
        direction: str,
        journal_entry_id: str,
        payload: str,
        now: datetime,
    ) -> SponsorSharedEntry:
        prefix = {DIRECTION_OUTGOING: "share", DIRECTION_INCOMING: "incoming"}.get(
            direction, "comment"
        )
        row = SponsorSharedEntry(
            id=generate_id(prefix),
            user_id=self._user_id,
            connection_id=connection_id,
            direction=direction,
            journal_entry_id=journal_entry_id,
            payload=payload,
            payload_digest=payload_digest(payload),
            created_at=now,
            updated_at=now,
        )
        self._session.add(row)
        try:
            self._session.commit()
        except SQLAlchemyError as err:
            self._session.rollback()
            raise StorageFailure("Failed to record shared payload") from err
        return row

    def _already_recorded(self, connection_id: str, payload: str) -> bool:
        stmt = select(SponsorSharedEntry.id).where(
            SponsorSharedEntry.user_id == self._user_id,
            SponsorSharedEntry.connection_id == connection_id,
            SponsorSharedEntry.payload_digest == payload_digest(payload),
            SponsorSharedEntry.payload == payload,
        )
        return bool(self._scalars(stmt))

    # --- Outgoing -------------------------------------------------------------------
    def share_entries(
        self,
        connection_id: str,
        entries: Iterable[JournalEntry],
        sender_name: str | None = None,
    ) -> list[str]:
        """Encrypt entries for a connection and record them as outgoing.

        Raises:
            ConnectionNotFound: If the connection does not exist
            ConnectionNotReady: If the key exchange is incomplete
        """
        connection, shared_key = self._ready_connection(connection_id)
        now = self._clock()
        payloads: list[str] = []

        for entry in entries:
            content = SharedEntryContent.from_entry(entry)
            encrypted = self._crypto.encrypt(shared_key, content.model_dump_json(by_alias=True))
            payload = create_entry_share_payload(
                EntrySharePayload(
                    code=connection.invite_code,
                    entry_id=entry.id,
                    encrypted=encrypted,
                    sender_name=sender_name,
                    created_at=now,
                )
            )
            self._record(connection.id, DIRECTION_OUTGOING, entry.id, payload, now)
            payloads.append(payload)

        logger.info("Shared %d entries on connection %s", len(payloads), connection.id)
        return payloads

    def share_comment(
        self,
        connection_id: str,
        entry_id: str,
        comment: str,
        sender_name: str | None = None,
    ) -> str:
        """Encrypt a comment on a shared entry and record it."""
        connection, shared_key = self._ready_connection(connection_id)
        now = self._clock()
        content = SharedCommentContent(comment=comment, created_at=now)
        encrypted = self._crypto.encrypt(shared_key, content.model_dump_json(by_alias=True))
        payload = create_comment_share_payload(
            CommentSharePayload(
                code=connection.invite_code,
                entry_id=entry_id,
                encrypted=encrypted,
                sender_name=sender_name,
                created_at=now,
            )
        )
        self._record(connection.id, DIRECTION_COMMENT, entry_id, payload, now)
        logger.info("Shared comment on connection %s", connection.id)
        return payload

    def list_outgoing(self, connection_id: str) -> list[SponsorSharedEntry]:
        """Return the outbox history for a connection, newest first."""
        stmt = (
            select(SponsorSharedEntry)
            .where(
                SponsorSharedEntry.user_id == self._user_id,
                SponsorSharedEntry.connection_id == connection_id,
                SponsorSharedEntry.direction == DIRECTION_OUTGOING,
            )
            .order_by(SponsorSharedEntry.created_at.desc())
        )
        return self._scalars(stmt)

    @staticmethod
    def build_share_message(payloads: list[str], sender_name: str | None = None) -> str:
        """Wrap payloads in a short note for the share sheet."""
        count = len(payloads)
        noun = "a journal entry" if count == 1 else f"{count} journal entries"
        return "\n".join(
            [
                f"{sender_name or 'Your sponsee'} shared {noun} with you from Recovery Companion.",
                "Paste the lines below into your Sponsor screen to import them.",
                "",
                *payloads,
            ]
        )

    # --- Incoming -------------------------------------------------------------------
    def import_payloads(self, raw_text: str) -> ImportResult:
        """Import newline-separated entry and comment payloads.

        Lines are handled strictly in order and each accepted line is committed
        before the next one is read. Unknown, undecryptable and duplicate lines
        are counted as skipped.

        Raises:
            StorageFailure: If the row store fails while recording
        """
        result = ImportResult()

        for line in split_payloads(raw_text):
            payload = decode_any(line)
            if not isinstance(payload, EntrySharePayload | CommentSharePayload):
                result.skipped += 1
                continue

            connection = self._connection_by_code(payload.code)
            if connection is None or not connection.is_ready:
                logger.warning("No ready connection for shared payload; skipping")
                result.skipped += 1
                continue

            is_entry = isinstance(payload, EntrySharePayload)
            content_model = SharedEntryContent if is_entry else SharedCommentContent
            try:
                shared_key = self._vault.decrypt(connection.shared_key)
                decrypted = self._crypto.decrypt(shared_key, payload.encrypted)
                content_model.model_validate_json(decrypted)
            except (DecryptionFailed, ValidationError) as err:
                logger.warning("Failed to decrypt sponsor payload: %s", type(err).__name__)
                result.skipped += 1
                continue

            if self._already_recorded(connection.id, line):
                result.skipped += 1
                continue

            direction = DIRECTION_INCOMING if is_entry else DIRECTION_COMMENT
            self._record(connection.id, direction, payload.entry_id, line, self._clock())
            if is_entry:
                result.entries += 1
            else:
                result.comments += 1

        logger.info(
            "Imported %d entries and %d comments, skipped %d",
            result.entries,
            result.comments,
            result.skipped,
        )
        return result

    def load_incoming_entries(self, connection_id: str) -> list[SharedEntryView]:
        """Decrypt every incoming entry for a connection, newest first.

        Rows that fail to decrypt are logged and left out.
        """
        shared_key = self._shared_key_for(connection_id)
        if shared_key is None:
            return []

        stmt = (
            select(SponsorSharedEntry)
            .where(
                SponsorSharedEntry.user_id == self._user_id,
                SponsorSharedEntry.connection_id == connection_id,
                SponsorSharedEntry.direction == DIRECTION_INCOMING,
            )
            .order_by(SponsorSharedEntry.created_at.desc())
        )

        entries: list[SharedEntryView] = []
        for row in self._scalars(stmt):
            payload = parse_entry_share_payload(row.payload)
            if payload is None:
                continue
            try:
                decrypted = self._crypto.decrypt(shared_key, payload.encrypted)
                content = SharedEntryContent.model_validate_json(decrypted)
            except (DecryptionFailed, ValidationError) as err:
                logger.warning("Failed to decrypt shared entry %s: %s", row.id, type(err).__name__)
                continue
            shared_at = ensure_aware(row.created_at)
            entries.append(
                SharedEntryView(
                    id=row.id,
                    entry_id=payload.entry_id,
                    title=content.title,
                    body=content.body,
                    mood=content.mood,
                    craving=content.craving,
                    tags=content.tags,
                    created_at=content.created_at or shared_at,
                    shared_at=shared_at,
                )
            )
        return entries

    def load_comments_for_entry(self, entry_id: str) -> list[SharedCommentView]:
        """Decrypt every comment recorded against a shared entry, newest first."""
        stmt = (
            select(SponsorSharedEntry)
            .where(
                SponsorSharedEntry.user_id == self._user_id,
                SponsorSharedEntry.journal_entry_id == entry_id,
                SponsorSharedEntry.direction == DIRECTION_COMMENT,
            )
            .order_by(SponsorSharedEntry.created_at.desc())
        )

        keys: dict[str, str | None] = {}
        comments: list[SharedCommentView] = []
        for row in self._scalars(stmt):
            payload = parse_comment_share_payload(row.payload)
            if payload is None:
                continue
            if row.connection_id not in keys:
                keys[row.connection_id] = self._shared_key_for(row.connection_id)
            shared_key = keys[row.connection_id]
            if shared_key is None:
                continue
            try:
                decrypted = self._crypto.decrypt(shared_key, payload.encrypted)
                content = SharedCommentContent.model_validate_json(decrypted)
            except (DecryptionFailed, ValidationError) as err:
                logger.warning("Failed to decrypt comment %s: %s", row.id, type(err).__name__)
                continue
            comments.append(
                SharedCommentView(
                    id=row.id,
                    entry_id=payload.entry_id,
                    comment=content.comment,
                    created_at=content.created_at or ensure_aware(row.created_at),
                )
            )
        return comments
