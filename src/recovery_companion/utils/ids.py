"""Identifier helpers for locally created rows."""

from __future__ import annotations

import uuid


def generate_id(prefix: str | None = None) -> str:
    """Return a random identifier, optionally namespaced by `prefix`."""
    value = uuid.uuid4().hex
    if prefix:
        return f"{prefix}_{value}"
    return value
