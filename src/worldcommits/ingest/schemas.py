"""Wire schemas for the bridge-facing ingestion endpoints."""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from worldcommits.schemas import CamelModel


# Column bounds: event counters are 32-bit INTEGER, event times BIGINT.
MAX_INT32 = 2**31 - 1
MAX_INT64 = 2**63 - 1
# Transport bound only; sanitize_micro_summary strips fences and caps what is stored.
MAX_RAW_SUMMARY_LENGTH = 100_000


def _now_ms() -> int:
    return int(time.time() * 1000)


class TelemetryEvent(CamelModel):
    """One telemetry event as forwarded by the tool-call bridge."""

    event_id: str | None = Field(None, min_length=8, max_length=128)
    session_id: str = Field(..., min_length=1, max_length=128)
    user_id: str | None = Field(None, max_length=36)
    github_username: str = Field(..., min_length=1, max_length=64)
    timestamp: int = Field(default_factory=_now_ms, ge=0, le=MAX_INT64)
    prompt_length: int = Field(0, ge=0, le=MAX_INT32)
    contains_code_block: bool = False
    model_used: str = Field("unknown", max_length=120)
    retry_index: int = Field(0, ge=0, le=MAX_INT32)
    time_since_last_prompt_ms: int = Field(0, ge=0, le=MAX_INT64)
    ai_edit_suggested: bool = False
    ai_edit_accepted: bool = False
    manual_override: bool = False
    lines_added_count: int = Field(0, ge=0, le=MAX_INT32)
    lines_removed_count: int = Field(0, ge=0, le=MAX_INT32)
    repeated_pattern_detected: bool = False
    high_retry_rate: bool = False
    micro_summary: str = Field("", max_length=MAX_RAW_SUMMARY_LENGTH)
    mark_session_completed: bool = False

    @field_validator("session_id", "github_username")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            msg = "must not be blank"
            raise ValueError(msg)
        return stripped


class IngestResultResponse(CamelModel):
    post_id: str
    prompt_count: int
    completed: bool
    duplicate: bool = False


class RewriteOutcomeResponse(CamelModel):
    rewritten: bool
    reason: str | None = None
    provider: str | None = None


class IngestResponse(BaseModel):
    ingest: IngestResultResponse
    rewrite: RewriteOutcomeResponse


class ResolveKeyRequest(BaseModel):
    api_key: str = ""


class ResolveKeyResponse(CamelModel):
    ok: Literal[True] = True
    user_id: str
    github_username: str
    git_email: str


class CompleteSessionResponse(BaseModel):
    updated: bool


class DeadLetterResponse(CamelModel):
    id: int
    post_id: str
    prompt_count: int
    completed: bool
    attempts: int
    error: str
    created_at: str
