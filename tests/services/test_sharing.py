"""Tests for sharing and importing encrypted entries and comments."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from recovery_companion.models import SponsorSharedEntry
from recovery_companion.models.shared_entry import DIRECTION_INCOMING, DIRECTION_OUTGOING
from recovery_companion.schemas.sponsor import EncryptedPayload, EntrySharePayload
from recovery_companion.services.crypto import SponsorCryptoService, b64decode, b64encode
from recovery_companion.services.errors import (
    ConnectionNotFound,
    ConnectionNotReady,
    StorageFailure,
)
from recovery_companion.services.payloads import (
    create_entry_share_payload,
    parse_entry_share_payload,
)
from recovery_companion.services.sharing import SponsorShareService, payload_digest
from tests.conftest import make_entry


def _tamper(payload: str) -> str:
    """Flip one ciphertext byte while keeping the payload well formed."""
    decoded = parse_entry_share_payload(payload)
    assert decoded is not None
    raw = bytearray(b64decode(decoded.encrypted.ciphertext))
    raw[0] ^= 0x01
    tampered = decoded.model_copy(
        update={
            "encrypted": EncryptedPayload(iv=decoded.encrypted.iv, ciphertext=b64encode(bytes(raw)))
        }
    )
    return create_entry_share_payload(tampered)


def test_entry_round_trip(
    paired: dict[str, str],
    sponsee_sharing: SponsorShareService,
    sponsor_sharing: SponsorShareService,
    clock,
) -> None:
    [payload] = sponsee_sharing.share_entries(
        paired["sponsee_connection_id"], [make_entry()], sender_name="Sam"
    )
    assert payload.startswith("RCSHARE:")
    assert "Rough morning" not in payload

    clock.advance(minutes=5)
    result = sponsor_sharing.import_payloads(payload)
    assert (result.entries, result.comments, result.skipped) == (1, 0, 0)

    [view] = sponsor_sharing.load_incoming_entries(paired["sponsor_connection_id"])
    assert view.entry_id == "entry-1"
    assert view.title == "Rough morning"
    assert view.body.startswith("Called my sponsor")
    assert (view.mood, view.craving) == (6, 3)
    assert view.tags == ["gratitude", "meeting"]
    assert view.created_at == make_entry().created_at
    assert view.shared_at == clock()


def test_share_requires_ready_connection(
    sponsee_pairing,
    sponsee_sharing: SponsorShareService,
) -> None:
    sponsee_pairing.create_invite()
    [pending] = sponsee_pairing.pending_invites()

    with pytest.raises(ConnectionNotReady):
        sponsee_sharing.share_entries(pending.id, [make_entry()])
    with pytest.raises(ConnectionNotReady):
        sponsee_sharing.share_comment(pending.id, "entry-1", "hi")
    with pytest.raises(ConnectionNotFound):
        sponsee_sharing.share_entries("sponsor_missing", [make_entry()])


def test_outgoing_history_is_recorded(
    paired: dict[str, str],
    sponsee_sharing: SponsorShareService,
) -> None:
    connection_id = paired["sponsee_connection_id"]
    payloads = sponsee_sharing.share_entries(
        connection_id, [make_entry("entry-1"), make_entry("entry-2")]
    )

    outgoing = sponsee_sharing.list_outgoing(connection_id)
    assert {row.journal_entry_id for row in outgoing} == {"entry-1", "entry-2"}
    assert all(row.direction == DIRECTION_OUTGOING for row in outgoing)
    assert {row.payload for row in outgoing} == set(payloads)
    for row in outgoing:
        assert row.payload_digest == payload_digest(row.payload)


def test_reimport_is_deduplicated(
    paired: dict[str, str],
    sponsee_sharing: SponsorShareService,
    sponsor_sharing: SponsorShareService,
    db_session: Session,
) -> None:
    payloads = sponsee_sharing.share_entries(paired["sponsee_connection_id"], [make_entry()])
    text = "\n".join(payloads)

    first = sponsor_sharing.import_payloads(text)
    second = sponsor_sharing.import_payloads(text)

    assert first.imported == 1
    assert (second.entries, second.skipped) == (0, 1)
    incoming = db_session.scalars(
        select(SponsorSharedEntry).where(
            SponsorSharedEntry.user_id == "sponsor-user",
            SponsorSharedEntry.direction == DIRECTION_INCOMING,
        )
    ).all()
    assert len(incoming) == 1


def test_bad_lines_do_not_abort_batch(
    paired: dict[str, str],
    sponsee_sharing: SponsorShareService,
    sponsor_sharing: SponsorShareService,
) -> None:
    payloads = sponsee_sharing.share_entries(
        paired["sponsee_connection_id"],
        [make_entry("entry-1"), make_entry("entry-2"), make_entry("entry-3")],
    )
    lines = [
        payloads[0],
        payloads[1][:-12],
        "just some chatter from the group text",
        _tamper(payloads[2]),
        payloads[2],
    ]

    result = sponsor_sharing.import_payloads("\n\n".join(lines))

    assert result.entries == 2
    assert result.skipped == 3
    assert result.imported + result.skipped == len(lines)
    views = sponsor_sharing.load_incoming_entries(paired["sponsor_connection_id"])
    assert {view.entry_id for view in views} == {"entry-1", "entry-3"}


def test_unknown_code_and_handshake_lines_are_skipped(
    paired: dict[str, str],
    sponsee_pairing,
    sponsor_sharing: SponsorShareService,
) -> None:
    stranger_key = SponsorCryptoService.derive_shared_key(
        SponsorCryptoService.generate_key_pair().private_key,
        SponsorCryptoService.generate_key_pair().public_key,
    )
    foreign = create_entry_share_payload(
        EntrySharePayload(
            code="RC-ZZZZZZ",
            entry_id="entry-9",
            encrypted=SponsorCryptoService.encrypt(stranger_key, '{"body": "x"}'),
            created_at=make_entry().created_at,
        )
    )
    invite, _ = sponsee_pairing.create_invite()

    result = sponsor_sharing.import_payloads(f"{foreign}\n{invite}")

    assert result.imported == 0
    assert result.skipped == 2


def test_comment_round_trip(
    paired: dict[str, str],
    sponsee_sharing: SponsorShareService,
    sponsor_sharing: SponsorShareService,
) -> None:
    payload = sponsor_sharing.share_comment(
        paired["sponsor_connection_id"], "entry-1", "Proud of you. Call me after.", "Alex"
    )
    assert payload.startswith("RCCOMMENT:")

    result = sponsee_sharing.import_payloads(payload)
    assert (result.entries, result.comments) == (0, 1)

    [comment] = sponsee_sharing.load_comments_for_entry("entry-1")
    assert comment.comment == "Proud of you. Call me after."
    assert comment.entry_id == "entry-1"
    assert sponsee_sharing.load_comments_for_entry("entry-2") == []


def test_tampered_rows_are_left_out_of_history(
    paired: dict[str, str],
    sponsee_sharing: SponsorShareService,
    sponsor_sharing: SponsorShareService,
    db_session: Session,
) -> None:
    payloads = sponsee_sharing.share_entries(
        paired["sponsee_connection_id"], [make_entry("entry-1"), make_entry("entry-2")]
    )
    sponsor_sharing.import_payloads("\n".join(payloads))

    row = db_session.scalars(
        select(SponsorSharedEntry).where(
            SponsorSharedEntry.user_id == "sponsor-user",
            SponsorSharedEntry.journal_entry_id == "entry-2",
        )
    ).one()
    row.payload = _tamper(row.payload)
    db_session.commit()

    views = sponsor_sharing.load_incoming_entries(paired["sponsor_connection_id"])
    assert [view.entry_id for view in views] == ["entry-1"]


def test_load_without_key_is_empty(sponsor_sharing: SponsorShareService) -> None:
    assert sponsor_sharing.load_incoming_entries("sponsor_missing") == []


def test_build_share_message() -> None:
    message = SponsorShareService.build_share_message(["RCSHARE:a", "RCSHARE:b"], "Sam")
    lines = message.splitlines()
    assert lines[0] == "Sam shared 2 journal entries with you from Recovery Companion."
    assert lines[-2:] == ["RCSHARE:a", "RCSHARE:b"]

    single = SponsorShareService.build_share_message(["RCSHARE:a"])
    assert single.startswith("Your sponsee shared a journal entry")


def test_import_after_invite_accepted_twice(
    sponsee_pairing,
    sponsor_pairing,
    sponsee_sharing: SponsorShareService,
    sponsor_sharing: SponsorShareService,
    clock,
) -> None:
    invite, code = sponsee_pairing.create_invite("Sam")
    sponsor_pairing.connect_as_sponsor(invite, "Alex")
    clock.advance(minutes=10)
    # The first confirm reply never arrived, so the sponsor accepts again.
    connection = sponsee_pairing.confirm_invite(sponsor_pairing.connect_as_sponsor(invite, "Alex"))

    payloads = sponsee_sharing.share_entries(connection.id, [make_entry()])
    result = sponsor_sharing.import_payloads("\n".join(payloads))

    assert (result.entries, result.skipped) == (1, 0)
    [sponsee_row] = sponsor_pairing.my_sponsees()
    [view] = sponsor_sharing.load_incoming_entries(sponsee_row.id)
    assert view.title == "Rough morning"


def test_import_read_failure_raises_storage_failure(
    paired: dict[str, str],
    sponsee_sharing: SponsorShareService,
    sponsor_sharing: SponsorShareService,
    db_session: Session,
    mocker,
) -> None:
    payloads = sponsee_sharing.share_entries(paired["sponsee_connection_id"], [make_entry()])
    mocker.patch.object(
        db_session,
        "scalars",
        side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")),
    )

    with pytest.raises(StorageFailure):
        sponsor_sharing.import_payloads(payloads[0])
    with pytest.raises(StorageFailure):
        sponsor_sharing.load_incoming_entries(paired["sponsor_connection_id"])
