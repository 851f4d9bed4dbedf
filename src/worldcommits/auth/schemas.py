"""API key Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from worldcommits.schemas import CamelModel


class ApiKeyCreateRequest(CamelModel):
    """Create a new API key."""

    label: str | None = Field(None, max_length=512)


class ApiKeyCreateResponse(CamelModel):
    """Response when creating an API key (raw key shown ONCE)."""

    id: str
    key: str
    prefix: str
    label: str | None = None
    created_at: datetime


class ApiKeyResponse(CamelModel):
    """API key listing (prefix only, never the key or its hash)."""

    id: str
    prefix: str
    label: str | None = None
    created_at: datetime
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None


class ApiKeyRevokeResponse(CamelModel):
    revoked: bool
