"""Leaderboard and live activity endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.config import get_settings
from worldcommits.database import get_session
from worldcommits.leaderboard.schemas import LeaderboardEntryResponse, LiveStatsResponse
from worldcommits.leaderboard.service import get_leaderboard, get_live_stats, list_countries
from worldcommits.leaderboard.time_ranges import TimeRange
from worldcommits.redis_client import get_redis_or_none

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


@router.get("/leaderboard", response_model=list[LeaderboardEntryResponse])
async def leaderboard(
    time_range: TimeRange = Query("all"),
    country: str | None = Query(None, max_length=64),
    sort_by: Literal["prompts", "words", "lines", "sessions"] = Query("prompts"),
    db: AsyncSession = Depends(get_session),
) -> list[LeaderboardEntryResponse]:
    """Top authors for a time window (top 100 by default)."""
    entries = await get_leaderboard(
        db,
        time_range=time_range,
        country=country,
        sort_by=sort_by,
        limit=get_settings().leaderboard_limit,
    )
    return [LeaderboardEntryResponse.model_validate(e) for e in entries]


@router.get("/leaderboard/countries", response_model=list[str])
async def leaderboard_countries(db: AsyncSession = Depends(get_session)) -> list[str]:
    """Distinct countries configured by users, sorted."""
    return await list_countries(db)


@router.get("/stats/live", response_model=LiveStatsResponse)
async def live_stats(
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_redis_or_none),
) -> LiveStatsResponse:
    """Authors and prompts in the trailing window, plus total distinct authors."""
    stats = await get_live_stats(db, redis)
    return LiveStatsResponse(**stats)
