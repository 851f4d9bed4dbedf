"""Per-IP fixed-window rate limiting backed by Redis counters."""

import time
from typing import Any

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from worldcommits.redis_client import get_redis_or_none

logger = structlog.get_logger()

_PROBE_PATHS = frozenset({"/health", "/ready"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Count requests per client IP in fixed windows of ``window_seconds``.

    Probe paths and ``exempt_prefixes`` are never counted. Without a reachable
    Redis every request passes and no limit headers are set.
    """

    def __init__(
        self,
        app: Any,  # noqa: ANN401
        requests_per_window: int = 100,
        window_seconds: int = 60,
        exempt_prefixes: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self.limit = requests_per_window
        self.window_seconds = window_seconds
        self.exempt_prefixes = exempt_prefixes

    def _is_exempt(self, path: str) -> bool:
        return path in _PROBE_PATHS or path.startswith(self.exempt_prefixes)

    async def _count(self, client_ip: str) -> int | None:
        redis = get_redis_or_none()
        if redis is None:
            return None
        key = f"ratelimit:{client_ip}:{int(time.time()) // self.window_seconds}"
        try:
            async with redis.pipeline(transaction=True) as pipe:
                count, _ = await pipe.incr(key).expire(key, self.window_seconds + 1).execute()
        except RedisError:
            logger.warning("rate_limit_unavailable", client_ip=client_ip, exc_info=True)
            return None
        return int(count)

    def _limit_headers(self, remaining: int) -> dict[str, str]:
        return {"X-RateLimit-Limit": str(self.limit), "X-RateLimit-Remaining": str(remaining)}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self._is_exempt(request.url.path):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        count = await self._count(client_ip)
        if count is None:
            return await call_next(request)

        if count > self.limit:
            logger.info("rate_limited", client_ip=client_ip, count=count)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests"},
                headers={"Retry-After": str(self.window_seconds), **self._limit_headers(0)},
            )

        response = await call_next(request)
        response.headers.update(self._limit_headers(max(0, self.limit - count)))
        return response
