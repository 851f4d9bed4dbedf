"""Shared test fixtures.

Tests run against an in-memory SQLite database created from the ORM
metadata. Redis is not initialised, so rate limiting and stat caching are
bypassed unless a test provides a client.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

os.environ["WC_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["WC_INGEST_TOKEN"] = "test-ingest-token"
os.environ["WC_JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-bytes!"
os.environ["WC_LOG_FORMAT"] = "console"
os.environ["WC_OPENAI_API_KEY"] = ""
os.environ["WC_GEMINI_API_KEY"] = ""
os.environ["WC_REWRITE_DISPATCH_MODE"] = "inline"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from worldcommits.auth.jwt import create_access_token  # noqa: E402
from worldcommits.config import build_rewrite_config, get_settings  # noqa: E402
from worldcommits.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from worldcommits.db.base import Base  # noqa: E402
from worldcommits.db.models import User  # noqa: E402
from worldcommits.ingest.schemas import TelemetryEvent  # noqa: E402
from worldcommits.main import create_app  # noqa: E402
from worldcommits.rewrite.dispatcher import close_rewrite, init_rewrite  # noqa: E402

get_settings.cache_clear()

INGEST_TOKEN = "test-ingest-token"


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database with the full schema."""
    settings = get_settings()
    await init_db(settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    init_rewrite(settings, build_rewrite_config(settings), get_session_factory())

    yield get_session_factory()

    await close_rewrite(grace_seconds=0)
    await close_db()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for seeding and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to a fresh app and database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def bridge_headers() -> dict[str, str]:
    """Authorization header carrying the static ingest token."""
    return {"Authorization": f"Bearer {INGEST_TOKEN}"}


async def _create_user(
    factory: async_sessionmaker[AsyncSession],
    github_username: str | None = "alice",
    country: str | None = None,
    email: str | None = "alice@example.com",
    display_name: str | None = None,
) -> User:
    """Insert a user and return it detached from its session."""
    async with factory() as db:
        user = User(
            github_username=github_username,
            display_name=display_name,
            email=email,
            country=country,
            created_at=datetime.now(timezone.utc),
        )
        db.add(user)
        await db.commit()
        return user


@pytest_asyncio.fixture
async def user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return await _create_user(session_factory)


@pytest.fixture
def make_user(session_factory: async_sessionmaker[AsyncSession]):
    """Factory for extra users: ``await make_user(github_username="bob", country="DE")``."""

    async def _make(**kwargs: object) -> User:
        return await _create_user(session_factory, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient, user: User) -> AsyncClient:
    """Client carrying a session JWT for ``user``."""
    token = create_access_token(user.id, user.github_username)
    client.headers["Authorization"] = f"Bearer {token}"
    return client


@pytest.fixture
def make_event():
    """Factory for telemetry events with sensible defaults for session ``demo-1``."""

    def _make(**overrides: object) -> TelemetryEvent:
        data: dict[str, object] = {
            "session_id": "demo-1",
            "github_username": "alice",
            "timestamp": 1_760_000_000_000,
            "prompt_length": 12,
            "model_used": "gpt-5",
            "lines_added_count": 5,
            "lines_removed_count": 1,
            "micro_summary": "Refined the feed layout.",
        }
        data.update(overrides)
        return TelemetryEvent(**data)  # type: ignore[arg-type]

    return _make
