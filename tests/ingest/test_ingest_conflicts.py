"""Ingestion under write conflicts: bounded retries and replayed event ids."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

import worldcommits.ingest.service as ingest_service
from worldcommits.db.models import Post, TimelineEvent
from worldcommits.ingest.service import MAX_INGEST_ATTEMPTS, ingest_event


async def _post(factory, session_id: str = "demo-1") -> Post | None:
    async with factory() as db:
        return (await db.execute(select(Post).where(Post.session_id == session_id))).scalar_one_or_none()


async def _event_count(factory) -> int:
    async with factory() as db:
        return await db.scalar(select(func.count(TimelineEvent.id)))


@pytest.fixture
def failing_commit(monkeypatch):
    """Make ``AsyncSession.commit`` raise StaleDataError for the first ``n`` calls."""
    original = AsyncSession.commit
    calls: list[int] = []

    def _install(failures: int) -> list[int]:
        async def commit(self: AsyncSession) -> None:
            calls.append(1)
            if len(calls) <= failures:
                raise StaleDataError("post row changed underneath the update")
            await original(self)

        monkeypatch.setattr(AsyncSession, "commit", commit)
        return calls

    return _install


class TestConflictRetry:
    async def test_retried_event_counted_once(self, session_factory, make_event, failing_commit) -> None:
        async with session_factory() as db:
            for ts in (1_760_000_000_000, 1_760_000_001_000):
                await ingest_event(db, make_event(timestamp=ts))

        calls = failing_commit(1)
        async with session_factory() as db:
            result = await ingest_event(db, make_event(timestamp=1_760_000_002_000))

        assert len(calls) == 2
        assert result.prompt_count == 3
        post = await _post(session_factory)
        assert post is not None
        assert post.prompt_count == 3
        assert post.total_words == 36
        assert await _event_count(session_factory) == 3

    async def test_first_event_retried_creates_one_post(self, session_factory, make_event, failing_commit) -> None:
        calls = failing_commit(1)
        async with session_factory() as db:
            result = await ingest_event(db, make_event())

        assert len(calls) == 2
        assert result.prompt_count == 1
        async with session_factory() as db:
            assert await db.scalar(select(func.count(Post.id))) == 1
        assert await _event_count(session_factory) == 1

    async def test_retries_are_bounded(self, session_factory, make_event, failing_commit) -> None:
        calls = failing_commit(MAX_INGEST_ATTEMPTS + 5)
        async with session_factory() as db:
            with pytest.raises(StaleDataError):
                await ingest_event(db, make_event())

        assert len(calls) == MAX_INGEST_ATTEMPTS
        assert await _post(session_factory) is None
        assert await _event_count(session_factory) == 0


class TestReplayedEventId:
    async def test_lost_race_reports_duplicate(self, session_factory, make_event, monkeypatch) -> None:
        event = make_event(event_id="evt-00000001")
        async with session_factory() as db:
            await ingest_event(db, event)

        # The first lookup misses, as if the original insert had not committed yet.
        original = ingest_service._find_duplicate
        lookups: list[str] = []

        async def find_duplicate(db, event_id):
            lookups.append(event_id)
            if len(lookups) == 1:
                return None
            return await original(db, event_id)

        monkeypatch.setattr(ingest_service, "_find_duplicate", find_duplicate)

        async with session_factory() as db:
            result = await ingest_event(db, event)

        assert result.duplicate is True
        assert result.prompt_count == 1
        assert len(lookups) == 2
        post = await _post(session_factory)
        assert post is not None
        assert post.prompt_count == 1
        assert await _event_count(session_factory) == 1
