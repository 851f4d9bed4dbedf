"""Optional Redis client.

Redis only backs rate limiting and the live-stats cache. When it is not
configured or unreachable at startup, ``get_redis_or_none`` returns None and
both features degrade to pass-through.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis() -> None:
    """Close the client's pool; a no-op when Redis was never connected."""
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
    _client = None


def get_redis() -> redis.Redis:
    if _client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _client


def get_redis_or_none() -> redis.Redis | None:
    """The connected client, or None (FastAPI dependency)."""
    return _client
