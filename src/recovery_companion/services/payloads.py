"""Wire codec for sponsor payloads.

Every payload travels as ``<PREFIX>:<base64(JSON)>`` so it survives being
pasted into SMS or email. Decoding never raises: an unknown prefix, broken
base64 or JSON, a shape mismatch, or an unsupported ``version`` all yield
``None``, which lets an importer probe each kind in turn.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from enum import Enum
from typing import Any, Final

from pydantic import ValidationError

from recovery_companion.schemas.sponsor import (
    PAYLOAD_VERSION,
    CommentSharePayload,
    EntrySharePayload,
    SharePayload,
    SponsorConfirmPayload,
    SponsorInvitePayload,
)

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS: Final[frozenset[int]] = frozenset({PAYLOAD_VERSION})


class PayloadKind(str, Enum):
    """Payload kinds, valued by their wire prefix."""

    INVITE = "RCINVITE"
    CONFIRM = "RCCONFIRM"
    ENTRY = "RCSHARE"
    COMMENT = "RCCOMMENT"


_MODELS: Final[dict[PayloadKind, type]] = {
    PayloadKind.INVITE: SponsorInvitePayload,
    PayloadKind.CONFIRM: SponsorConfirmPayload,
    PayloadKind.ENTRY: EntrySharePayload,
    PayloadKind.COMMENT: CommentSharePayload,
}

# Order in which unknown text is probed.
DECODE_ORDER: Final[tuple[PayloadKind, ...]] = (
    PayloadKind.INVITE,
    PayloadKind.CONFIRM,
    PayloadKind.ENTRY,
    PayloadKind.COMMENT,
)


def kind_of(payload: SharePayload) -> PayloadKind:
    """Return the wire kind for a payload instance."""
    for kind, model in _MODELS.items():
        if type(payload) is model:
            return kind
    raise TypeError(f"Unsupported payload type: {type(payload).__name__}")


def encode_json_b64(prefix: str, data: dict[str, Any]) -> str:
    """Serialize ``data`` as ``PREFIX:<base64(JSON)>``."""
    raw = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return f"{prefix}:{base64.b64encode(raw).decode('ascii')}"


def decode_json_b64(prefix: str, value: str) -> dict[str, Any] | None:
    """Inverse of :func:`encode_json_b64`; None on any mismatch."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value.startswith(f"{prefix}:"):
        return None
    try:
        raw = base64.b64decode(value[len(prefix) + 1:], validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def encode_payload(payload: SharePayload) -> str:
    """Encode any of the four payload kinds to its wire string."""
    return encode_json_b64(kind_of(payload).value, payload.to_wire())


def decode_payload(kind: PayloadKind, value: str) -> SharePayload | None:
    """Decode ``value`` as a payload of ``kind``."""
    data = decode_json_b64(kind.value, value)
    if data is None:
        return None
    version = data.get("version")
    if type(version) is not int or version not in SUPPORTED_VERSIONS:
        logger.debug("Rejecting %s payload with version %r", kind.value, version)
        return None
    try:
        return _MODELS[kind].model_validate(data)
    except ValidationError:
        return None


def decode_any(value: str) -> SharePayload | None:
    """Classify unknown text by trying every kind in ``DECODE_ORDER``."""
    for kind in DECODE_ORDER:
        payload = decode_payload(kind, value)
        if payload is not None:
            return payload
    return None


def split_payloads(raw: str) -> list[str]:
    """Split pasted text into trimmed, non-empty lines."""
    return [line.strip() for line in raw.splitlines() if line.strip()]


def create_invite_payload(data: SponsorInvitePayload) -> str:
    return encode_payload(data)


def parse_invite_payload(value: str) -> SponsorInvitePayload | None:
    return decode_payload(PayloadKind.INVITE, value)


def create_confirm_payload(data: SponsorConfirmPayload) -> str:
    return encode_payload(data)


def parse_confirm_payload(value: str) -> SponsorConfirmPayload | None:
    return decode_payload(PayloadKind.CONFIRM, value)


def create_entry_share_payload(data: EntrySharePayload) -> str:
    return encode_payload(data)


def parse_entry_share_payload(value: str) -> EntrySharePayload | None:
    return decode_payload(PayloadKind.ENTRY, value)


def create_comment_share_payload(data: CommentSharePayload) -> str:
    return encode_payload(data)


def parse_comment_share_payload(value: str) -> CommentSharePayload | None:
    return decode_payload(PayloadKind.COMMENT, value)
