"""Public feed: recent session posts with their latest timeline events."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.database import get_session
from worldcommits.db.models import Post, TimelineEvent
from worldcommits.posts.schemas import PaginationInfo, PostPage, PostResponse, TimelineEventResponse
from worldcommits.posts.service import list_posts

router = APIRouter(prefix="/api/v1/posts", tags=["Posts"])


def _event_response(event: TimelineEvent) -> TimelineEventResponse:
    return TimelineEventResponse(
        id=event.id,
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
        micro_summary=event.micro_summary,
    )


def _post_response(post: Post, timeline: list[TimelineEvent]) -> PostResponse:
    return PostResponse(
        id=post.id,
        session_id=post.session_id,
        github_username=post.github_username,
        title=post.title,
        description=post.description,
        status=post.status,
        prompt_count=post.prompt_count,
        total_words=post.total_words,
        total_lines_added=post.total_lines_added,
        total_lines_removed=post.total_lines_removed,
        ai_accepted_count=post.ai_accepted_count,
        manual_override_count=post.manual_override_count,
        high_retry_events_count=post.high_retry_events_count,
        started_at=post.started_at,
        last_prompt_at=post.last_prompt_at,
        ended_at=post.ended_at,
        last_rewrite_at=post.last_rewrite_at,
        last_rewrite_provider=post.last_rewrite_provider,
        updated_at=post.updated_at,
        timeline=[_event_response(e) for e in timeline],
    )


async def _page(
    db: AsyncSession,
    limit: int,
    cursor: str | None,
    github_username: str | None = None,
) -> PostPage:
    try:
        items, next_cursor = await list_posts(db, limit=limit, cursor=cursor, github_username=github_username)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return PostPage(
        data=[_post_response(post, timeline) for post, timeline in items],
        pagination=PaginationInfo(limit=limit, has_more=next_cursor is not None, next_cursor=next_cursor),
    )


@router.get("", response_model=PostPage)
async def list_public_posts(
    limit: int = Query(20, ge=1, le=50),
    cursor: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> PostPage:
    """Most recently updated posts across all authors."""
    return await _page(db, limit, cursor)


@router.get("/by/{github_username}", response_model=PostPage)
async def list_posts_by_author(
    github_username: str,
    limit: int = Query(20, ge=1, le=50),
    cursor: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> PostPage:
    """Most recently updated posts of one author."""
    return await _page(db, limit, cursor, github_username)
