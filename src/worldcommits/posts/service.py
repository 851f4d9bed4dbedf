"""Post reads: recent timelines and the public feed.

The feed uses keyset pagination on (updated_at DESC, id DESC); the cursor
encodes both as base64 JSON.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime

from sqlalchemy import Select, and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.db.models import Post, TimelineEvent

FEED_TIMELINE_LENGTH = 20
MAX_PAGE_SIZE = 50


async def recent_timeline(db: AsyncSession, post_id: str, limit: int) -> list[TimelineEvent]:
    """Most recent ``limit`` timeline events of a post, newest first."""
    result = await db.execute(
        select(TimelineEvent)
        .where(TimelineEvent.post_id == post_id)
        .order_by(TimelineEvent.timestamp.desc(), TimelineEvent.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def recent_summaries(events: list[TimelineEvent], limit: int) -> list[str]:
    """Non-empty micro-summaries from ``events`` in order, at most ``limit``."""
    return [e.micro_summary for e in events if e.micro_summary][:limit]


def encode_cursor(updated_at: datetime, post_id: str) -> str:
    """Encode a cursor from post fields."""
    payload = {"updated_at": updated_at.isoformat(), "id": post_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode a cursor into (updated_at, post_id).

    Raises:
        ValueError: If cursor is malformed.
    """
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        return datetime.fromisoformat(data["updated_at"]), str(data["id"])
    except Exception as e:
        msg = f"Invalid cursor: {e}"
        raise ValueError(msg) from e


def apply_cursor(query: Select, cursor: str | None) -> Select:  # type: ignore[type-arg]
    """Apply keyset cursor to a post query ordered by (updated_at DESC, id DESC)."""
    if cursor is None:
        return query

    cursor_time, cursor_id = decode_cursor(cursor)
    return query.where(
        or_(
            Post.updated_at < cursor_time,
            and_(Post.updated_at == cursor_time, Post.id < cursor_id),
        )
    )


async def list_posts(
    db: AsyncSession,
    limit: int = 20,
    cursor: str | None = None,
    github_username: str | None = None,
) -> tuple[list[tuple[Post, list[TimelineEvent]]], str | None]:
    """Fetch a page of posts, each with its most recent timeline events.

    Returns:
        Tuple of ([(post, timeline), ...], next_cursor or None).
    """
    limit = min(limit, MAX_PAGE_SIZE)

    query = select(Post).order_by(Post.updated_at.desc(), Post.id.desc())
    if github_username is not None:
        query = query.where(Post.github_username == github_username)
    query = apply_cursor(query, cursor).limit(limit + 1)

    result = await db.execute(query)
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    posts = rows[:limit]

    items = [(post, await recent_timeline(db, post.id, FEED_TIMELINE_LENGTH)) for post in posts]

    next_cursor = None
    if has_more and posts:
        last = posts[-1]
        next_cursor = encode_cursor(last.updated_at, last.id)

    return items, next_cursor
