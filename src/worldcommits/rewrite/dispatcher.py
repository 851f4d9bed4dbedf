"""Background rewrite execution.

Rewrites run off the request path through a bounded queue drained by a fixed
pool of worker tasks. Each task is attempted up to ``max_attempts`` times;
one that still fails is written to ``rewrite_dead_letters``. On shutdown the
queue is drained for at most the configured grace period. Any rewrite lost
there leaves the post with its ingestion-time copy, which is always valid.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worldcommits.config import RewriteConfig, Settings
from worldcommits.db.models import RewriteDeadLetter
from worldcommits.rewrite.pipeline import RewriteOutcome, RewritePipeline, RewriteRequest

logger = structlog.get_logger()

REWRITE_QUEUED = RewriteOutcome(rewritten=False, reason="rewrite-queued")


class RewriteDispatcher:
    """Bounded worker pool in front of a ``RewritePipeline``."""

    def __init__(
        self,
        pipeline: RewritePipeline,
        session_factory: async_sessionmaker[AsyncSession],
        workers: int = 2,
        queue_size: int = 1000,
        max_attempts: int = 3,
        retry_delay_seconds: float = 0.5,
    ) -> None:
        self.pipeline = pipeline
        self._session_factory = session_factory
        self._worker_count = max(1, workers)
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay_seconds
        self._queue: asyncio.Queue[RewriteRequest] = asyncio.Queue(maxsize=queue_size)
        self._workers: list[asyncio.Task[None]] = []

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Spawn the worker tasks."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"rewrite-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("rewrite_dispatcher_started", workers=self._worker_count)

    async def dispatch(self, request: RewriteRequest) -> RewriteOutcome:
        """Queue a rewrite that is due, or report why none will run.

        When the queue is full the rewrite runs inline so it is not lost.
        """
        skipped = self.pipeline.precheck(request)
        if skipped is not None:
            return skipped
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            logger.warning("rewrite_queue_full", post_id=request.post_id)
            return await self.pipeline.run(request)
        return REWRITE_QUEUED

    async def _worker(self, index: int) -> None:
        while True:
            request = await self._queue.get()
            try:
                await self._process(request)
            except Exception:
                logger.exception("rewrite_worker_error", worker=index, post_id=request.post_id)
            finally:
                self._queue.task_done()

    async def _process(self, request: RewriteRequest) -> None:
        error = ""
        for attempt in range(1, self._max_attempts + 1):
            try:
                outcome = await self.pipeline.attempt(request)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "rewrite_attempt_failed",
                    post_id=request.post_id,
                    attempt=attempt,
                    error=error,
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_delay * attempt)
                continue
            logger.debug(
                "rewrite_task_done",
                post_id=request.post_id,
                rewritten=outcome.rewritten,
                reason=outcome.reason,
            )
            return

        await self._dead_letter(request, error)

    async def _dead_letter(self, request: RewriteRequest, error: str) -> None:
        try:
            async with self._session_factory() as db:
                db.add(
                    RewriteDeadLetter(
                        post_id=request.post_id,
                        prompt_count=request.prompt_count,
                        completed=request.completed,
                        attempts=self._max_attempts,
                        error=error[:2000],
                        created_at=datetime.now(timezone.utc),
                    )
                )
                await db.commit()
        except SQLAlchemyError:
            logger.exception("rewrite_dead_letter_write_failed", post_id=request.post_id)
            return
        logger.error("rewrite_dead_lettered", post_id=request.post_id, attempts=self._max_attempts)

    async def stop(self, grace_seconds: float = 10.0) -> None:
        """Drain queued rewrites for up to ``grace_seconds``, then cancel the workers."""
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=grace_seconds)
            except TimeoutError:
                logger.warning("rewrite_drain_timeout", pending=self._queue.qsize())

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("rewrite_dispatcher_stopped")


async def list_dead_letters(db: AsyncSession, limit: int = 50) -> list[RewriteDeadLetter]:
    """Most recent dead-lettered rewrites, newest first."""
    result = await db.execute(
        select(RewriteDeadLetter).order_by(RewriteDeadLetter.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Process-wide rewrite runtime
# ---------------------------------------------------------------------------

_pipeline: RewritePipeline | None = None
_dispatcher: RewriteDispatcher | None = None


def init_rewrite(
    settings: Settings,
    config: RewriteConfig,
    session_factory: async_sessionmaker[AsyncSession],
) -> RewritePipeline:
    """Build the pipeline and, in background mode, start the dispatcher."""
    global _pipeline, _dispatcher  # noqa: PLW0603
    _pipeline = RewritePipeline(config, session_factory)
    if settings.rewrite_dispatch_mode == "background":
        _dispatcher = RewriteDispatcher(
            _pipeline,
            session_factory,
            workers=settings.rewrite_workers,
            queue_size=settings.rewrite_queue_size,
            max_attempts=settings.rewrite_max_attempts,
        )
        _dispatcher.start()
    logger.info(
        "rewrite_initialized",
        mode=settings.rewrite_dispatch_mode,
        providers=[p.name for p in config.providers],
    )
    return _pipeline


async def close_rewrite(grace_seconds: float = 10.0) -> None:
    """Drain the dispatcher and close provider clients."""
    global _pipeline, _dispatcher  # noqa: PLW0603
    if _dispatcher is not None:
        await _dispatcher.stop(grace_seconds)
        _dispatcher = None
    if _pipeline is not None:
        await _pipeline.close()
        _pipeline = None


def get_pipeline() -> RewritePipeline:
    """Get the rewrite pipeline."""
    if _pipeline is None:
        msg = "Rewrite pipeline not initialized. Call init_rewrite() first."
        raise RuntimeError(msg)
    return _pipeline


def get_dispatcher() -> RewriteDispatcher | None:
    """Get the background dispatcher, or None in inline mode."""
    return _dispatcher
