"""User profile Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from worldcommits.schemas import CamelModel


class UserResponse(CamelModel):
    """Own profile."""

    id: str
    github_username: str | None = None
    display_name: str | None = None
    email: str | None = None
    email_verified: bool = False
    country: str | None = None
    created_at: datetime


class ProfileUpdateRequest(CamelModel):
    """Update profile fields. A blank country clears it."""

    country: str | None = Field(None, max_length=64)
