"""API key lifecycle: issue, list, revoke, resolve, touch.

``resolve_api_key`` is the only place an opaque bearer key becomes an
identity. ``None`` means unauthenticated; callers must never treat it as an
anonymous identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from worldcommits.auth.api_keys import generate_api_key, hash_api_key
from worldcommits.db.models import ApiKey, User
from worldcommits.errors import NotFound

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

MAX_LABEL_LENGTH = 120


@dataclass(frozen=True)
class IssuedKey:
    key_id: str
    raw_key: str
    prefix: str
    label: str | None
    created_at: datetime


@dataclass(frozen=True)
class ResolvedIdentity:
    user_id: str
    github_username: str
    git_email: str
    key_id: str


def _clean_label(label: str | None) -> str | None:
    if label is None:
        return None
    trimmed = label.strip()
    return trimmed[:MAX_LABEL_LENGTH] if trimmed else None


async def issue_api_key(db: AsyncSession, user_id: str, label: str | None = None) -> IssuedKey:
    """Create a key for ``user_id``. The raw key is returned here and nowhere else."""
    full_key, prefix, key_hash = generate_api_key()
    now = datetime.now(timezone.utc)

    api_key = ApiKey(
        user_id=user_id,
        key_hash=key_hash,
        key_prefix=prefix,
        label=_clean_label(label),
        created_at=now,
    )
    db.add(api_key)
    await db.commit()

    logger.info("api_key_issued", user_id=user_id, key_id=api_key.id, prefix=prefix)
    return IssuedKey(
        key_id=api_key.id,
        raw_key=full_key,
        prefix=prefix,
        label=api_key.label,
        created_at=now,
    )


async def list_api_keys(db: AsyncSession, user_id: str) -> list[ApiKey]:
    """All keys owned by ``user_id``, newest first, revoked ones included."""
    result = await db.execute(
        select(ApiKey)
        .where(ApiKey.user_id == user_id)
        .order_by(ApiKey.created_at.desc(), ApiKey.id.desc())
    )
    return list(result.scalars().all())


async def revoke_api_key(db: AsyncSession, user_id: str, key_id: str) -> bool:
    """
    Soft-revoke a key.

    Returns:
        True if the key was revoked by this call, False if it already was.

    Raises:
        NotFound: If the key does not exist or belongs to someone else.
    """
    result = await db.execute(
        select(ApiKey)
        .where(ApiKey.id == key_id)
        .where(ApiKey.user_id == user_id)
    )
    key = result.scalar_one_or_none()
    if key is None:
        raise NotFound("API key not found")
    if key.revoked_at is not None:
        return False

    key.revoked_at = datetime.now(timezone.utc)
    await db.commit()
    logger.info("api_key_revoked", user_id=user_id, key_id=key_id)
    return True


async def resolve_api_key(db: AsyncSession, raw_key: str) -> ResolvedIdentity | None:
    """Translate a raw bearer key into the owning identity, or None."""
    key_hash = hash_api_key(raw_key.strip())
    result = await db.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
    key = result.scalar_one_or_none()
    if key is None or key.revoked_at is not None:
        return None

    user = await db.get(User, key.user_id)
    if user is None:
        return None

    logger.info("api_key_resolved", user_id=user.id, key_id=key.id, prefix=key.key_prefix)
    return ResolvedIdentity(
        user_id=user.id,
        github_username=user.github_username or user.display_name or "unknown",
        git_email=user.email or "unknown@example.com",
        key_id=key.id,
    )


async def touch_api_key(db: AsyncSession, key_id: str) -> None:
    """Record last use. Failure never propagates to the caller's primary operation."""
    try:
        await db.execute(
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(last_used_at=datetime.now(timezone.utc))
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("api_key_touch_failed", key_id=key_id, exc_info=True)
