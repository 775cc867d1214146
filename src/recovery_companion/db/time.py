"""Clock helpers for stored timestamps."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; SQLite drops tzinfo on the way back."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
