"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.config import get_settings
from worldcommits.database import get_session
from worldcommits.redis_client import get_redis_or_none
from worldcommits.rewrite.dispatcher import get_dispatcher

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe. Redis is optional; without it the service runs unthrottled and uncached."""
    checks: dict[str, object] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc}"

    redis = get_redis_or_none()
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except RedisError as exc:
            checks["redis"] = f"error: {exc}"

    dispatcher = get_dispatcher()
    if dispatcher is not None:
        checks["rewrite_queue"] = dispatcher.pending

    all_ok = all(checks[k] in ("ok", "disabled") for k in ("database", "redis"))
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version, environment and rewrite dispatch mode."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "rewrite_dispatch_mode": settings.rewrite_dispatch_mode,
    }
