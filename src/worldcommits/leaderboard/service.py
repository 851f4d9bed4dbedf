"""Leaderboard aggregation and live activity stats.

Entries are recomputed from posts on every query: filter by time window and
country, group by author, sort by the chosen metric, keep the top N, then
attach each author's stored country.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.config import get_settings
from worldcommits.db.models import Post, TimelineEvent, User
from worldcommits.errors import ValidationFailure
from worldcommits.leaderboard.time_ranges import TIME_RANGES, get_time_range_cutoff

logger = logging.getLogger(__name__)

LIVE_STATS_CACHE_KEY = "stats:live"


@dataclass
class LeaderboardEntry:
    github_username: str
    total_prompts: int
    total_lines_added: int
    total_lines_removed: int
    total_words: int
    session_count: int
    last_active_at: int
    country: str | None = None


SORT_KEYS: dict[str, Callable[[LeaderboardEntry], int]] = {
    "prompts": lambda e: e.total_prompts,
    "words": lambda e: e.total_words,
    "lines": lambda e: e.total_lines_added + e.total_lines_removed,
    "sessions": lambda e: e.session_count,
}


def leaderboard_timezone() -> tzinfo:
    """The timezone whose midnights bound the leaderboard windows."""
    name = get_settings().leaderboard_timezone
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


async def get_leaderboard(
    db: AsyncSession,
    time_range: str = "all",
    country: str | None = None,
    sort_by: str = "prompts",
    limit: int = 100,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[LeaderboardEntry]:
    """Top authors for a time window, optionally restricted to one country.

    Ties keep grouping order (first session created wins).

    Raises:
        ValidationFailure: If ``time_range`` or ``sort_by`` is unknown.
    """
    if time_range not in TIME_RANGES:
        raise ValidationFailure(f"Unknown time range: {time_range}")
    sort_key = SORT_KEYS.get(sort_by)
    if sort_key is None:
        raise ValidationFailure(f"Unknown sort: {sort_by}")

    cutoff = get_time_range_cutoff(time_range, now, tz or leaderboard_timezone())

    query = (
        select(
            Post.github_username,
            func.sum(Post.prompt_count).label("total_prompts"),
            func.sum(Post.total_lines_added).label("total_lines_added"),
            func.sum(Post.total_lines_removed).label("total_lines_removed"),
            func.sum(Post.total_words).label("total_words"),
            func.count(Post.id).label("session_count"),
            func.max(Post.last_prompt_at).label("last_active_at"),
        )
        .group_by(Post.github_username)
        .order_by(func.min(Post.created_at), Post.github_username)
    )
    if cutoff is not None:
        query = query.where(Post.last_prompt_at >= cutoff)
    if country:
        authors = select(User.github_username).where(
            User.country == country,
            User.github_username.is_not(None),
        )
        query = query.where(Post.github_username.in_(authors))

    result = await db.execute(query)
    entries = [
        LeaderboardEntry(
            github_username=row.github_username,
            total_prompts=int(row.total_prompts or 0),
            total_lines_added=int(row.total_lines_added or 0),
            total_lines_removed=int(row.total_lines_removed or 0),
            total_words=int(row.total_words or 0),
            session_count=int(row.session_count),
            last_active_at=int(row.last_active_at or 0),
        )
        for row in result
    ]

    # sorted() is stable, so equal metrics keep grouping order.
    top = sorted(entries, key=sort_key, reverse=True)[:limit]
    countries = await _countries_for(db, [e.github_username for e in top])
    for entry in top:
        entry.country = countries.get(entry.github_username)
    return top


async def _countries_for(db: AsyncSession, usernames: list[str]) -> dict[str, str | None]:
    """Batch-load stored countries for leaderboard authors."""
    if not usernames:
        return {}
    result = await db.execute(
        select(User.github_username, User.country).where(User.github_username.in_(usernames))
    )
    return {row.github_username: row.country for row in result}


async def list_countries(db: AsyncSession) -> list[str]:
    """Sorted distinct countries configured across all users."""
    result = await db.execute(
        select(User.country).where(User.country.is_not(None), User.country != "").distinct()
    )
    return sorted(c for c in result.scalars().all() if c)


async def get_live_stats(
    db: AsyncSession,
    redis: Redis | None = None,
    window_minutes: int | None = None,
    cache_ttl_seconds: int | None = None,
) -> dict[str, Any]:
    """Activity over the trailing window plus total distinct authors.

    Served from a short Redis cache when Redis is available.
    """
    settings = get_settings()
    window = window_minutes if window_minutes is not None else settings.live_stats_window_minutes
    ttl = cache_ttl_seconds if cache_ttl_seconds is not None else settings.live_stats_cache_ttl_seconds

    if redis is not None:
        try:
            cached = await redis.get(LIVE_STATS_CACHE_KEY)
        except RedisError:
            logger.warning("Live stats cache read failed, querying the database", exc_info=True)
            cached = None
        if cached:
            return json.loads(cached)

    since = int(time.time() * 1000) - window * 60 * 1000
    recent = await db.execute(
        select(
            func.count(TimelineEvent.id),
            func.count(distinct(TimelineEvent.github_username)),
        ).where(TimelineEvent.timestamp >= since)
    )
    recent_prompts, active_vibecoders = recent.one()
    total_registered = await db.scalar(select(func.count(distinct(Post.github_username))))

    stats = {
        "active_vibecoders": int(active_vibecoders or 0),
        "recent_prompts": int(recent_prompts or 0),
        "total_registered": int(total_registered or 0),
    }

    if redis is not None and ttl > 0:
        try:
            await redis.setex(LIVE_STATS_CACHE_KEY, ttl, json.dumps(stats))
        except RedisError:
            logger.warning("Live stats cache write failed", exc_info=True)

    return stats
