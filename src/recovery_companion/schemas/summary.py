"""Schemas for the coarse, unencrypted status summary."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from .base import WireModel


class SponseeProfile(BaseModel):
    """Profile fields the summary is allowed to disclose."""

    display_name: str | None = None
    sober_days: int = Field(..., ge=0)
    program_type: str


class SponseeStats(BaseModel):
    """Pre-aggregated activity counters; never raw entries."""

    last_checkin_date: datetime | date | None = None
    checkin_streak: int = Field(default=0, ge=0)
    current_step: int = Field(default=1, ge=1, le=12)
    meetings_this_week: int = Field(default=0, ge=0)
    last_meeting_date: datetime | date | None = None
    average_mood_last_7_days: float | None = None
    average_craving_last_7_days: float | None = None


class SponsorShareData(WireModel):
    """Privacy-limited status snapshot shared with a sponsor.

    Only aggregates and counters: no journal text and no individual check-ins.
    """

    display_name: str | None = None
    sober_days: int
    program_type: str

    last_checkin_date: date | None = None
    checkin_streak: int
    current_step: int

    meetings_this_week: int
    last_meeting_date: date | None = None

    average_mood_last_7_days: float | None = None
    average_craving_last_7_days: float | None = None

    generated_at: datetime
