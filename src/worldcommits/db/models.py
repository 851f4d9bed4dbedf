"""ORM models for users, API keys, session posts and their timelines.

Event-time columns (``timestamp``, ``started_at``, ``last_prompt_at``,
``ended_at``) hold epoch milliseconds exactly as the bridge sends them.
Bookkeeping columns are timezone-aware datetimes.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worldcommits.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Identity record. Created by the sign-in collaborator, never deleted here."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    github_username: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    api_keys: Mapped[list[ApiKey]] = relationship("ApiKey", back_populates="user")


# ---------------------------------------------------------------------------
# Auth: API Keys
# ---------------------------------------------------------------------------


class ApiKey(Base):
    """Bearer credential for the tool-call bridge. Only the SHA-256 of the key is stored."""

    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    key_prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    label: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="api_keys")


# ---------------------------------------------------------------------------
# Posts (per-session aggregates)
# ---------------------------------------------------------------------------


class Post(Base):
    """Running summary of one coding session."""

    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_github_username", "github_username"),
        Index("ix_posts_updated_at", "updated_at"),
        CheckConstraint("status IN ('active', 'completed')", name="ck_posts_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    github_username: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    prompt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_words: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_lines_added: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_lines_removed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    ai_accepted_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manual_override_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    high_retry_events_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_prompt_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ended_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_rewrite_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_rewrite_provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Optimistic concurrency token: a concurrent writer makes the flush fail instead of
    # silently overwriting counters.
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012

    timeline: Mapped[list[TimelineEvent]] = relationship("TimelineEvent", back_populates="post")


class TimelineEvent(Base):
    """One ingested telemetry record. Append-only."""

    __tablename__ = "timeline_events"
    __table_args__ = (
        Index("ix_timeline_post_id_timestamp", "post_id", "timestamp"),
        Index("ix_timeline_session_id_timestamp", "session_id", "timestamp"),
        Index("ix_timeline_github_username_timestamp", "github_username", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    post_id: Mapped[str] = mapped_column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    github_username: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    prompt_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    contains_code_block: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    model_used: Mapped[str] = mapped_column(String(120), nullable=False, default="unknown")
    retry_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_since_last_prompt_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    ai_edit_suggested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_edit_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    manual_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lines_added_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lines_removed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repeated_pattern_detected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    high_retry_rate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    micro_summary: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    post: Mapped[Post] = relationship("Post", back_populates="timeline")


# ---------------------------------------------------------------------------
# Rewrite dead letters
# ---------------------------------------------------------------------------


class RewriteDeadLetter(Base):
    """A rewrite task that exhausted its attempts. Kept for inspection."""

    __tablename__ = "rewrite_dead_letters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    prompt_count: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    error: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
