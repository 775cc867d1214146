"""Coarse status summaries for one-way sharing with a sponsor.

This path is deliberately unencrypted and therefore only ever carries
aggregates and counters. Journal text goes through the encrypted share
service instead.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Final

from pydantic import ValidationError

from recovery_companion.db.time import utcnow
from recovery_companion.schemas.summary import SponseeProfile, SponseeStats, SponsorShareData
from recovery_companion.services.payloads import decode_json_b64, encode_json_b64

# Kept apart from RCSHARE, which is the encrypted entry envelope.
STATUS_PREFIX: Final[str] = "RCSTATUS"


def _as_date(value: datetime | date | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def generate_share_data(
    profile: SponseeProfile,
    stats: SponseeStats,
    now: datetime | None = None,
) -> SponsorShareData:
    """Build a summary from already-aggregated profile and stats."""
    return SponsorShareData(
        display_name=profile.display_name,
        sober_days=profile.sober_days,
        program_type=profile.program_type,
        last_checkin_date=_as_date(stats.last_checkin_date),
        checkin_streak=stats.checkin_streak,
        current_step=stats.current_step,
        meetings_this_week=stats.meetings_this_week,
        last_meeting_date=_as_date(stats.last_meeting_date),
        average_mood_last_7_days=stats.average_mood_last_7_days,
        average_craving_last_7_days=stats.average_craving_last_7_days,
        generated_at=now or utcnow(),
    )


def encode_share_data(data: SponsorShareData) -> str:
    return encode_json_b64(STATUS_PREFIX, data.to_wire())


def decode_share_data(encoded: str) -> SponsorShareData | None:
    """Decode a status summary; None for anything that is not one."""
    raw = decode_json_b64(STATUS_PREFIX, encoded)
    if raw is None:
        return None
    try:
        return SponsorShareData.model_validate(raw)
    except ValidationError:
        return None


def generate_share_message(data: SponsorShareData) -> str:
    """Render a summary as plain text for the share sheet."""
    lines = [
        f"Recovery Update from {data.display_name or 'Your Sponsee'}",
        "",
        f"Clean Days: {data.sober_days}",
        f"Check-in Streak: {data.checkin_streak} days",
        f"Working on Step: {data.current_step}",
        f"Meetings this week: {data.meetings_this_week}",
    ]

    if data.average_mood_last_7_days is not None:
        lines.append(f"Avg Mood (7 days): {data.average_mood_last_7_days:.1f}/10")

    if data.average_craving_last_7_days is not None:
        lines.append(f"Avg Craving (7 days): {data.average_craving_last_7_days:.1f}/10")

    if data.last_checkin_date is not None:
        lines.append(f"Last check-in: {data.last_checkin_date.isoformat()}")

    lines.append("")
    lines.append(f"Generated: {data.generated_at.date().isoformat()}")
    lines.append("Sent from Recovery Companion")

    return "\n".join(lines)
