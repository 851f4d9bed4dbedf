"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from redis.exceptions import RedisError

from worldcommits.config import build_rewrite_config, get_settings
from worldcommits.database import close_db, get_session_factory, init_db
from worldcommits.health.router import router as health_router
from worldcommits.ingest.router import router as ingest_router
from worldcommits.leaderboard.router import router as leaderboard_router
from worldcommits.middleware import setup_middleware
from worldcommits.posts.router import router as posts_router
from worldcommits.redis_client import close_redis, get_redis, init_redis
from worldcommits.rewrite.dispatcher import close_rewrite, init_rewrite
from worldcommits.users.router import router as users_router

logger = structlog.get_logger()


async def _connect_redis(url: str) -> None:
    """Connect Redis if reachable. The service runs without it (no rate limits, no stat cache)."""
    await init_redis(url)
    try:
        await get_redis().ping()
    except (RedisError, OSError):
        logger.warning("redis_unavailable", url=url.split("@")[-1])
        await close_redis()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await _connect_redis(settings.redis_url)
    init_rewrite(settings, build_rewrite_config(settings), get_session_factory())

    yield

    # Drain background rewrites before the database goes away.
    await close_rewrite(settings.rewrite_shutdown_grace_seconds)
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="worldcommits API",
        description="Coding-session telemetry feed, copy rewrites and leaderboards",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(ingest_router)
    app.include_router(users_router)
    app.include_router(posts_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
