"""Tests for background rewrite dispatch, retries and dead-lettering."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worldcommits.rewrite.dispatcher import REWRITE_QUEUED, RewriteDispatcher, list_dead_letters
from worldcommits.rewrite.pipeline import POLICY_SKIP, RewriteOutcome, RewriteRequest

REQUEST = RewriteRequest(post_id="post-1", prompt_count=5, completed=False)


class StubPipeline:
    """Pipeline double whose ``attempt`` fails a set number of times."""

    def __init__(self, failures: int = 0, skip: bool = False) -> None:
        self.failures = failures
        self.skip = skip
        self.attempts = 0
        self.inline_runs = 0

    def precheck(self, request: RewriteRequest) -> RewriteOutcome | None:
        return POLICY_SKIP if self.skip else None

    async def attempt(self, request: RewriteRequest) -> RewriteOutcome:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise RuntimeError("provider exploded")
        return RewriteOutcome(rewritten=True, provider="openai")

    async def run(self, request: RewriteRequest) -> RewriteOutcome:
        self.inline_runs += 1
        return RewriteOutcome(rewritten=True, provider="openai")


def _dispatcher(
    pipeline: StubPipeline,
    session_factory: async_sessionmaker[AsyncSession],
    **kwargs: object,
) -> RewriteDispatcher:
    options: dict[str, object] = {"workers": 1, "max_attempts": 3, "retry_delay_seconds": 0}
    options.update(kwargs)
    return RewriteDispatcher(pipeline, session_factory, **options)  # type: ignore[arg-type]


async def _dead_letters(session_factory):
    async with session_factory() as db:
        return await list_dead_letters(db)


class TestDispatch:
    async def test_due_rewrite_is_queued(self, session_factory) -> None:
        dispatcher = _dispatcher(StubPipeline(), session_factory)

        assert await dispatcher.dispatch(REQUEST) == REWRITE_QUEUED
        assert dispatcher.pending == 1

    async def test_skip_is_not_queued(self, session_factory) -> None:
        dispatcher = _dispatcher(StubPipeline(skip=True), session_factory)

        assert await dispatcher.dispatch(REQUEST) == POLICY_SKIP
        assert dispatcher.pending == 0

    async def test_full_queue_runs_inline(self, session_factory) -> None:
        pipeline = StubPipeline()
        dispatcher = _dispatcher(pipeline, session_factory, queue_size=1)

        await dispatcher.dispatch(REQUEST)
        outcome = await dispatcher.dispatch(REQUEST)

        assert outcome == RewriteOutcome(rewritten=True, provider="openai")
        assert pipeline.inline_runs == 1
        assert dispatcher.pending == 1


class TestWorkers:
    async def test_queued_rewrite_runs_on_drain(self, session_factory) -> None:
        pipeline = StubPipeline()
        dispatcher = _dispatcher(pipeline, session_factory)
        dispatcher.start()

        await dispatcher.dispatch(REQUEST)
        await dispatcher.stop(grace_seconds=5)

        assert pipeline.attempts == 1
        assert dispatcher.pending == 0
        assert await _dead_letters(session_factory) == []

    async def test_transient_failure_is_retried(self, session_factory) -> None:
        pipeline = StubPipeline(failures=1)
        dispatcher = _dispatcher(pipeline, session_factory)
        dispatcher.start()

        await dispatcher.dispatch(REQUEST)
        await dispatcher.stop(grace_seconds=5)

        assert pipeline.attempts == 2
        assert await _dead_letters(session_factory) == []

    async def test_exhausted_attempts_are_dead_lettered(self, session_factory) -> None:
        pipeline = StubPipeline(failures=10)
        dispatcher = _dispatcher(pipeline, session_factory)
        dispatcher.start()

        await dispatcher.dispatch(REQUEST)
        await dispatcher.stop(grace_seconds=5)

        assert pipeline.attempts == 3
        letters = await _dead_letters(session_factory)
        assert len(letters) == 1
        assert letters[0].post_id == "post-1"
        assert letters[0].prompt_count == 5
        assert letters[0].attempts == 3
        assert letters[0].error == "RuntimeError: provider exploded"


async def test_dead_letters_endpoint_lists_entries(session_factory, client, bridge_headers) -> None:
    dispatcher = _dispatcher(StubPipeline(failures=10), session_factory, max_attempts=1)
    dispatcher.start()
    await dispatcher.dispatch(REQUEST)
    await dispatcher.stop(grace_seconds=5)

    response = await client.get("/mcp/rewrite-dead-letters", headers=bridge_headers)

    assert response.status_code == 200
    [entry] = response.json()
    assert entry["postId"] == "post-1"
    assert entry["attempts"] == 1
    assert entry["error"] == "RuntimeError: provider exploded"
