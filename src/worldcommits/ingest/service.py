"""Telemetry ingestion: find-or-create the session post, append, recompute.

Each call runs in a single transaction, so readers never see a timeline row
without the matching counter update. Concurrent writers to the same session
are detected rather than tolerated: the post row carries a version column,
so a lost update surfaces as ``StaleDataError`` and a racing create as an
``IntegrityError`` on ``posts.session_id``. Either one rolls back and the
whole ingestion is retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from worldcommits.db.models import Post, TimelineEvent
from worldcommits.errors import InternalConsistencyError
from worldcommits.ingest.copy import compose_post_copy
from worldcommits.ingest.sanitize import sanitize_micro_summary
from worldcommits.posts.service import recent_summaries, recent_timeline

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from worldcommits.ingest.schemas import TelemetryEvent

logger = structlog.get_logger()

MAX_INGEST_ATTEMPTS = 3
COPY_TIMELINE_WINDOW = 4
COPY_SUMMARY_LIMIT = 3


@dataclass(frozen=True)
class IngestResult:
    post_id: str
    prompt_count: int
    completed: bool
    duplicate: bool = False


async def ingest_event(db: AsyncSession, event: TelemetryEvent) -> IngestResult:
    """Apply one telemetry event to its session post.

    A replayed ``event_id`` is a no-op that reports the post's current state.

    Raises:
        InternalConsistencyError: If the post cannot be re-read after the append.
    """
    for attempt in range(1, MAX_INGEST_ATTEMPTS + 1):
        try:
            return await _ingest_once(db, event)
        except (IntegrityError, StaleDataError):
            await db.rollback()
            if event.event_id:
                duplicate = await _find_duplicate(db, event.event_id)
                if duplicate is not None:
                    return duplicate
            if attempt == MAX_INGEST_ATTEMPTS:
                raise
            logger.info("ingest_conflict_retry", session_id=event.session_id, attempt=attempt)
        except Exception:
            await db.rollback()
            raise
    raise AssertionError("unreachable")  # pragma: no cover


async def _find_duplicate(db: AsyncSession, event_id: str) -> IngestResult | None:
    result = await db.execute(select(TimelineEvent.post_id).where(TimelineEvent.event_id == event_id))
    post_id = result.scalar_one_or_none()
    if post_id is None:
        return None
    post = await db.get(Post, post_id)
    if post is None:
        return None
    logger.info("ingest_duplicate_event", event_id=event_id, post_id=post_id)
    return IngestResult(
        post_id=post.id,
        prompt_count=post.prompt_count,
        completed=post.status == "completed",
        duplicate=True,
    )


async def _ingest_once(db: AsyncSession, event: TelemetryEvent) -> IngestResult:
    now = datetime.now(timezone.utc)
    summary = sanitize_micro_summary(event.micro_summary)

    if event.event_id:
        duplicate = await _find_duplicate(db, event.event_id)
        if duplicate is not None:
            return duplicate

    result = await db.execute(select(Post).where(Post.session_id == event.session_id))
    post = result.scalar_one_or_none()
    created = post is None

    if post is None:
        seed_copy = compose_post_copy(
            github_username=event.github_username,
            prompt_count=1,
            high_retry_events_count=int(event.high_retry_rate),
            manual_override_count=int(event.manual_override),
            total_lines_added=event.lines_added_count,
            total_lines_removed=event.lines_removed_count,
            recent_summaries=[summary] if summary else [],
        )
        post = Post(
            session_id=event.session_id,
            user_id=event.user_id,
            github_username=event.github_username,
            title=seed_copy.title,
            description=seed_copy.description,
            status="completed" if event.mark_session_completed else "active",
            prompt_count=1,
            total_words=event.prompt_length,
            total_lines_added=event.lines_added_count,
            total_lines_removed=event.lines_removed_count,
            ai_accepted_count=int(event.ai_edit_accepted),
            manual_override_count=int(event.manual_override),
            high_retry_events_count=int(event.high_retry_rate),
            started_at=event.timestamp,
            last_prompt_at=event.timestamp,
            ended_at=event.timestamp if event.mark_session_completed else None,
            created_at=now,
            updated_at=now,
        )
        db.add(post)
        await db.flush()

    post_id = post.id
    db.add(
        TimelineEvent(
            event_id=event.event_id,
            post_id=post_id,
            session_id=event.session_id,
            github_username=event.github_username,
            timestamp=event.timestamp,
            prompt_length=event.prompt_length,
            contains_code_block=event.contains_code_block,
            model_used=event.model_used,
            retry_index=event.retry_index,
            time_since_last_prompt_ms=event.time_since_last_prompt_ms,
            ai_edit_suggested=event.ai_edit_suggested,
            ai_edit_accepted=event.ai_edit_accepted,
            manual_override=event.manual_override,
            lines_added_count=event.lines_added_count,
            lines_removed_count=event.lines_removed_count,
            repeated_pattern_detected=event.repeated_pattern_detected,
            high_retry_rate=event.high_retry_rate,
            micro_summary=summary,
            created_at=now,
        )
    )
    await db.flush()

    # Re-read for authoritative pre-update counters.
    post = await db.get(Post, post_id, populate_existing=True)
    if post is None:
        msg = "Failed to load post after event insert"
        raise InternalConsistencyError(msg)

    # A post created above is already seeded with this event.
    if not created:
        post.prompt_count += 1
        post.total_words += event.prompt_length
        post.total_lines_added += event.lines_added_count
        post.total_lines_removed += event.lines_removed_count
        post.ai_accepted_count += int(event.ai_edit_accepted)
        post.manual_override_count += int(event.manual_override)
        post.high_retry_events_count += int(event.high_retry_rate)

    timeline = await recent_timeline(db, post_id, COPY_TIMELINE_WINDOW)
    copy = compose_post_copy(
        github_username=post.github_username,
        prompt_count=post.prompt_count,
        high_retry_events_count=post.high_retry_events_count,
        manual_override_count=post.manual_override_count,
        total_lines_added=post.total_lines_added,
        total_lines_removed=post.total_lines_removed,
        recent_summaries=recent_summaries(timeline, COPY_SUMMARY_LIMIT),
    )
    post.title = copy.title
    post.description = copy.description
    if event.mark_session_completed:
        post.status = "completed"
        post.ended_at = event.timestamp
    post.last_prompt_at = max(post.last_prompt_at, event.timestamp)
    post.updated_at = now

    await db.commit()

    logger.info(
        "event_ingested",
        session_id=event.session_id,
        post_id=post_id,
        prompt_count=post.prompt_count,
        created=created,
        completed=event.mark_session_completed,
    )
    return IngestResult(
        post_id=post_id,
        prompt_count=post.prompt_count,
        completed=event.mark_session_completed,
    )


async def complete_session(db: AsyncSession, session_id: str) -> bool:
    """Mark a session's post completed now. Returns False for an unknown session."""
    result = await db.execute(select(Post).where(Post.session_id == session_id))
    post = result.scalar_one_or_none()
    if post is None:
        return False

    now = datetime.now(timezone.utc)
    post.status = "completed"
    post.ended_at = int(now.timestamp() * 1000)
    post.updated_at = now
    await db.commit()
    logger.info("session_completed", session_id=session_id, post_id=post.id)
    return True
