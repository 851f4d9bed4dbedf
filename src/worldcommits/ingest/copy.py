"""Deterministic feed copy for a post.

Used for the copy written at ingestion time and as the rewrite pipeline's
fallback, so it must stay pure.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

MAX_DESCRIPTION_LENGTH = 300


@dataclass(frozen=True)
class PostCopy:
    title: str
    description: str


def compose_post_copy(
    github_username: str,
    prompt_count: int,
    high_retry_events_count: int,
    manual_override_count: int,
    total_lines_added: int,
    total_lines_removed: int,
    recent_summaries: Sequence[str],
) -> PostCopy:
    """Build the title/description pair from counters and recent summaries."""
    pressure = "high" if high_retry_events_count > 2 else "steady"
    intent = "manual-heavy iteration" if manual_override_count > prompt_count / 2 else "ai-guided iteration"
    title = f"{github_username} · {intent} · {pressure} pressure"

    summaries = [s for s in recent_summaries if s][:3]
    if summaries:
        description = " ".join(summaries)[:MAX_DESCRIPTION_LENGTH]
    else:
        description = f"Prompts: {prompt_count}. Lines +{total_lines_added} / -{total_lines_removed}."

    return PostCopy(title=title, description=description)
