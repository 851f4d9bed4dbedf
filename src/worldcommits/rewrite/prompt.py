"""Prompt construction and response parsing for copy rewrites."""

from __future__ import annotations

import json
from collections.abc import Sequence

from worldcommits.db.models import Post
from worldcommits.ingest.copy import PostCopy

MAX_TITLE_LENGTH = 90
MAX_DESCRIPTION_LENGTH = 280

SYSTEM_INSTRUCTION = "You rewrite telemetry into safe short social copy. Output strict JSON only."


def build_rewrite_prompt(post: Post, timeline_summaries: Sequence[str]) -> str:
    """Render the instruction block for one post."""
    return f"""
You write short public feed copy for coding session telemetry.
Return strict JSON only: {{"title":"...","description":"..."}}.
Rules:
- title <= {MAX_TITLE_LENGTH} chars
- description <= {MAX_DESCRIPTION_LENGTH} chars
- no code, no file names, no stack traces, no secrets
- concrete and readable

Telemetry:
githubUsername={post.github_username}
promptCount={post.prompt_count}
totalWords={post.total_words}
totalLinesAdded={post.total_lines_added}
totalLinesRemoved={post.total_lines_removed}
aiAcceptedCount={post.ai_accepted_count}
manualOverrideCount={post.manual_override_count}
highRetryEventsCount={post.high_retry_events_count}
timelineSummaries={json.dumps(list(timeline_summaries))}
""".strip()


def parse_rewrite_json(text: str) -> PostCopy | None:
    """Extract ``{"title", "description"}`` from raw model output, capped to length.

    Only the span from the first ``{`` to the last ``}`` is parsed. Any
    parse or shape failure yields None.
    """
    trimmed = text.strip()
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(trimmed[start : end + 1])
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None

    title = parsed.get("title")
    description = parsed.get("description")
    if not isinstance(title, str) or not isinstance(description, str):
        return None
    return PostCopy(title=title[:MAX_TITLE_LENGTH], description=description[:MAX_DESCRIPTION_LENGTH])
