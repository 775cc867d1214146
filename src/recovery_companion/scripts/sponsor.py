"""Command-line front end for sponsor pairing and sharing.

Payloads are printed to stdout so they can be piped into a clipboard tool or
pasted into a message; nothing here sends data over the network.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from recovery_companion.core.settings import settings
from recovery_companion.db.session import SessionLocal, create_tables, session_scope
from recovery_companion.schemas.sponsor import JournalEntry
from recovery_companion.schemas.summary import SponseeProfile, SponseeStats
from recovery_companion.services import (
    ConnectionCodeService,
    ContentVault,
    DatabaseSecureStore,
    SponseeConnectionStore,
    SponsorPairingService,
    SponsorShareService,
)
from recovery_companion.services.codes import normalize_code
from recovery_companion.services.errors import SponsorError
from recovery_companion.services.summary import (
    encode_share_data,
    generate_share_data,
    generate_share_message,
)

logger = logging.getLogger(__name__)


class _Context:
    """Services wired against the configured database and vault."""

    def __init__(self, session: Session, vault: ContentVault) -> None:
        store = DatabaseSecureStore(SessionLocal, vault)
        self.codes = ConnectionCodeService(store)
        self.sponsees = SponseeConnectionStore(store)
        self.pairing = SponsorPairingService(session, settings.local_user_id, vault, self.codes)
        self.sharing = SponsorShareService(session, settings.local_user_id, vault)


def _read_text(value: str | None) -> str:
    """Return ``value``, the contents of a file given as ``@path``, or stdin."""
    if value is None or value == "-":
        return sys.stdin.read()
    if value.startswith("@"):
        return Path(value[1:]).read_text(encoding="utf-8")
    return value


def _cmd_code(ctx: _Context, args: argparse.Namespace) -> None:
    if args.action == "generate":
        code = ctx.codes.generate()
        if not ctx.codes.strong_randomness_available():
            print(
                "WARNING: no secure random source; this code is easier to guess",
                file=sys.stderr,
            )
    elif args.action == "revoke":
        ctx.codes.revoke()
        print("Pairing code revoked")
        return
    else:
        code = ctx.codes.get_current()
        if code is None:
            print("No pairing code")
            return
    status = "EXPIRED" if code.is_expired else "active"
    print(f"{code.code}  expires {code.expires_at.isoformat()}  [{status}]")


def _cmd_sponsees(ctx: _Context, args: argparse.Namespace) -> None:
    if args.action == "add":
        connection = ctx.sponsees.add(normalize_code(args.code), args.name)
        print(connection.id)
    elif args.action == "rename":
        ctx.sponsees.update_name(args.id, args.name)
    elif args.action == "remove":
        ctx.sponsees.remove(args.id)
    else:
        for connection in ctx.sponsees.list():
            print(f"{connection.id}  {connection.code}  {connection.name}")


def _cmd_invite(ctx: _Context, args: argparse.Namespace) -> None:
    payload, code = ctx.pairing.create_invite(args.name)
    logger.info("Invite created for code %s", code)
    print(payload)


def _cmd_connect(ctx: _Context, args: argparse.Namespace) -> None:
    print(ctx.pairing.connect_as_sponsor(_read_text(args.payload).strip(), args.name))


def _cmd_confirm(ctx: _Context, args: argparse.Namespace) -> None:
    connection = ctx.pairing.confirm_invite(_read_text(args.payload).strip())
    print(f"Connected: {connection.id}")


def _cmd_connections(ctx: _Context, args: argparse.Namespace) -> None:
    for c in ctx.pairing.list_connections():
        print(f"{c.id}  {c.role:<7}  {c.status:<9}  {c.invite_code}  {c.display_name or ''}")


def _cmd_share(ctx: _Context, args: argparse.Namespace) -> None:
    entries = TypeAdapter(list[JournalEntry]).validate_json(_read_text(args.entries))
    payloads = ctx.sharing.share_entries(args.connection_id, entries, args.sender)
    if args.message:
        print(SponsorShareService.build_share_message(payloads, args.sender))
    else:
        print("\n".join(payloads))


def _cmd_comment(ctx: _Context, args: argparse.Namespace) -> None:
    print(ctx.sharing.share_comment(args.connection_id, args.entry_id, args.text, args.sender))


def _cmd_import(ctx: _Context, args: argparse.Namespace) -> None:
    result = ctx.sharing.import_payloads(_read_text(args.payloads))
    print(f"entries={result.entries} comments={result.comments} skipped={result.skipped}")


def _cmd_entries(ctx: _Context, args: argparse.Namespace) -> None:
    views = ctx.sharing.load_incoming_entries(args.connection_id)
    print(json.dumps([view.model_dump(mode="json") for view in views], indent=2))


def _cmd_comments(ctx: _Context, args: argparse.Namespace) -> None:
    views = ctx.sharing.load_comments_for_entry(args.entry_id)
    print(json.dumps([view.model_dump(mode="json") for view in views], indent=2))


def _cmd_status(ctx: _Context, args: argparse.Namespace) -> None:
    data = generate_share_data(
        SponseeProfile(
            display_name=args.name,
            sober_days=args.sober_days,
            program_type=args.program,
        ),
        SponseeStats(
            checkin_streak=args.streak,
            current_step=args.step,
            meetings_this_week=args.meetings,
            average_mood_last_7_days=args.mood,
            average_craving_last_7_days=args.craving,
        ),
    )
    print(generate_share_message(data))
    if args.encode:
        print()
        print(encode_share_data(data))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recovery-sponsor",
        description="Pair with a sponsor and exchange encrypted journal entries",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    code = sub.add_parser("code", help="Manage the local pairing code")
    code.add_argument("action", choices=["generate", "show", "revoke"], nargs="?", default="show")
    code.set_defaults(func=_cmd_code)

    sponsees = sub.add_parser("sponsees", help="Manage the sponsor's sponsee list")
    sponsees_sub = sponsees.add_subparsers(dest="action", required=True)
    add = sponsees_sub.add_parser("add")
    add.add_argument("code")
    add.add_argument("name")
    sponsees_sub.add_parser("list")
    rename = sponsees_sub.add_parser("rename")
    rename.add_argument("id")
    rename.add_argument("name")
    remove = sponsees_sub.add_parser("remove")
    remove.add_argument("id")
    sponsees.set_defaults(func=_cmd_sponsees)

    invite = sub.add_parser("invite", help="Create an invite as a sponsee")
    invite.add_argument("--name", default=None, help="Name shown to the sponsor")
    invite.set_defaults(func=_cmd_invite)

    connect = sub.add_parser("connect", help="Accept an invite as a sponsor")
    connect.add_argument("payload", nargs="?", default=None, help="RCINVITE payload, @file or -")
    connect.add_argument("--name", default=None, help="Name shown to the sponsee")
    connect.set_defaults(func=_cmd_connect)

    confirm = sub.add_parser("confirm", help="Complete an invite with the sponsor's reply")
    confirm.add_argument("payload", nargs="?", default=None, help="RCCONFIRM payload, @file or -")
    confirm.set_defaults(func=_cmd_confirm)

    connections = sub.add_parser("connections", help="List sponsor connections")
    connections.set_defaults(func=_cmd_connections)

    share = sub.add_parser("share", help="Encrypt journal entries for a connection")
    share.add_argument("connection_id")
    share.add_argument("entries", nargs="?", default=None, help="JSON list of entries, @file or -")
    share.add_argument("--sender", default=None)
    share.add_argument("--message", action="store_true", help="Wrap payloads in a share note")
    share.set_defaults(func=_cmd_share)

    comment = sub.add_parser("comment", help="Encrypt a comment on a shared entry")
    comment.add_argument("connection_id")
    comment.add_argument("entry_id")
    comment.add_argument("text")
    comment.add_argument("--sender", default=None)
    comment.set_defaults(func=_cmd_comment)

    imp = sub.add_parser("import", help="Import pasted entry and comment payloads")
    imp.add_argument("payloads", nargs="?", default=None, help="Payload text, @file or -")
    imp.set_defaults(func=_cmd_import)

    entries = sub.add_parser("entries", help="Show decrypted incoming entries")
    entries.add_argument("connection_id")
    entries.set_defaults(func=_cmd_entries)

    comments = sub.add_parser("comments", help="Show decrypted comments for an entry")
    comments.add_argument("entry_id")
    comments.set_defaults(func=_cmd_comments)

    status = sub.add_parser("status", help="Render a coarse status summary")
    status.add_argument("--name", default=None)
    status.add_argument("--sober-days", type=int, required=True)
    status.add_argument("--program", default="NA")
    status.add_argument("--streak", type=int, default=0)
    status.add_argument("--step", type=int, default=1)
    status.add_argument("--meetings", type=int, default=0)
    status.add_argument("--mood", type=float, default=None)
    status.add_argument("--craving", type=float, default=None)
    status.add_argument("--encode", action="store_true", help="Also print an RCSTATUS payload")
    status.set_defaults(func=_cmd_status)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper(), stream=sys.stderr)

    try:
        create_tables()
        vault = ContentVault.from_settings()
        with session_scope() as session:
            args.func(_Context(session, vault), args)
    except (SponsorError, ValidationError, OSError) as exc:
        print(f"[recovery-sponsor] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
