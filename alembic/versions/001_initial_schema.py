"""Initial schema: users, API keys, session posts, timelines, rewrite dead letters.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables and indexes."""
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("github_username", sa.String(64), nullable=True, unique=True),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("country", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_country", "users", ["country"])

    # --- api_keys ---
    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("key_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("key_prefix", sa.String(16), nullable=False),
        sa.Column("label", sa.String(120), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    # --- posts ---
    op.create_table(
        "posts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(128), nullable=False, unique=True),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("github_username", sa.String(64), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("prompt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_words", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_lines_added", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_lines_removed", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("ai_accepted_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("manual_override_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("high_retry_events_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.Column("last_prompt_at", sa.BigInteger(), nullable=False),
        sa.Column("ended_at", sa.BigInteger(), nullable=True),
        sa.Column("last_rewrite_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_rewrite_provider", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("status IN ('active', 'completed')", name="ck_posts_status"),
    )
    op.create_index("ix_posts_github_username", "posts", ["github_username"])
    op.create_index("ix_posts_updated_at", "posts", ["updated_at"])

    # --- timeline_events ---
    op.create_table(
        "timeline_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.String(128), nullable=True, unique=True),
        sa.Column("post_id", sa.String(36), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_id", sa.String(128), nullable=False),
        sa.Column("github_username", sa.String(64), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("prompt_length", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("contains_code_block", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("model_used", sa.String(120), nullable=False, server_default="unknown"),
        sa.Column("retry_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("time_since_last_prompt_ms", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("ai_edit_suggested", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ai_edit_accepted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("manual_override", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("lines_added_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lines_removed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("repeated_pattern_detected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("high_retry_rate", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("micro_summary", sa.String(300), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_timeline_post_id_timestamp", "timeline_events", ["post_id", "timestamp"])
    op.create_index("ix_timeline_session_id_timestamp", "timeline_events", ["session_id", "timestamp"])
    op.create_index("ix_timeline_github_username_timestamp", "timeline_events", ["github_username", "timestamp"])

    # --- rewrite_dead_letters ---
    op.create_table(
        "rewrite_dead_letters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("post_id", sa.String(36), nullable=False),
        sa.Column("prompt_count", sa.Integer(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_rewrite_dead_letters_post_id", "rewrite_dead_letters", ["post_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("rewrite_dead_letters")
    op.drop_table("timeline_events")
    op.drop_table("posts")
    op.drop_table("api_keys")
    op.drop_table("users")
