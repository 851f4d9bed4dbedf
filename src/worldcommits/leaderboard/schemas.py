"""Leaderboard Pydantic schemas."""

from __future__ import annotations

from pydantic import ConfigDict

from worldcommits.schemas import CamelModel


class LeaderboardEntryResponse(CamelModel):
    """Single author rollup."""

    model_config = ConfigDict(from_attributes=True)

    github_username: str
    total_prompts: int
    total_lines_added: int
    total_lines_removed: int
    total_words: int
    session_count: int
    last_active_at: int
    country: str | None = None


class LiveStatsResponse(CamelModel):
    active_vibecoders: int
    recent_prompts: int
    total_registered: int
