"""Public feed Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from worldcommits.schemas import CamelModel


class TimelineEventResponse(CamelModel):
    """One telemetry record as shown under a post."""

    id: int
    timestamp: int
    prompt_length: int
    contains_code_block: bool
    model_used: str
    retry_index: int
    time_since_last_prompt_ms: int
    ai_edit_suggested: bool
    ai_edit_accepted: bool
    manual_override: bool
    lines_added_count: int
    lines_removed_count: int
    repeated_pattern_detected: bool
    high_retry_rate: bool
    micro_summary: str


class PostResponse(CamelModel):
    id: str
    session_id: str
    github_username: str
    title: str
    description: str
    status: str
    prompt_count: int
    total_words: int
    total_lines_added: int
    total_lines_removed: int
    ai_accepted_count: int
    manual_override_count: int
    high_retry_events_count: int
    started_at: int
    last_prompt_at: int
    ended_at: int | None = None
    last_rewrite_at: datetime | None = None
    last_rewrite_provider: str | None = None
    updated_at: datetime
    timeline: list[TimelineEventResponse] = []


class PaginationInfo(CamelModel):
    """Cursor-based pagination metadata."""

    limit: int
    has_more: bool
    next_cursor: str | None = None


class PostPage(CamelModel):
    """Paginated feed response."""

    data: list[PostResponse]
    pagination: PaginationInfo
