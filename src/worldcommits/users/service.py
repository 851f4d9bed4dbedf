"""User profile business logic."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.db.models import User

logger = structlog.get_logger()


async def update_country(db: AsyncSession, user: User, country: str | None) -> User:
    """Set or clear the user's country. Blank values clear it."""
    cleaned = country.strip() if country else ""
    user.country = cleaned or None
    await db.commit()
    logger.info("profile_updated", user_id=user.id, country=user.country)
    return user
