"""User router: own profile and API key management under /api/v1/users/me."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.auth.dependencies import get_current_user
from worldcommits.auth.schemas import (
    ApiKeyCreateRequest,
    ApiKeyCreateResponse,
    ApiKeyResponse,
    ApiKeyRevokeResponse,
)
from worldcommits.auth.service import issue_api_key, list_api_keys, revoke_api_key
from worldcommits.database import get_session
from worldcommits.db.models import User
from worldcommits.users.schemas import ProfileUpdateRequest, UserResponse
from worldcommits.users.service import update_country

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse(
        id=user.id,
        github_username=user.github_username,
        display_name=user.display_name,
        email=user.email,
        email_verified=user.email_verified_at is not None,
        country=user.country,
        created_at=user.created_at,
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def get_profile(
    user: User = Depends(get_current_user),
) -> UserResponse:
    """Get own profile."""
    return _user_response(user)


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Update profile. Only fields present in the body are touched."""
    if "country" in body.model_fields_set:
        user = await update_country(db, user, body.country)
    return _user_response(user)


# ---------------------------------------------------------------------------
# API Keys
# ---------------------------------------------------------------------------


@router.post("/me/api-keys", response_model=ApiKeyCreateResponse, status_code=201)
async def create_api_key(
    body: ApiKeyCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiKeyCreateResponse:
    """Create a new API key. Returns the full key ONCE."""
    issued = await issue_api_key(db, user.id, body.label)
    return ApiKeyCreateResponse(
        id=issued.key_id,
        key=issued.raw_key,
        prefix=issued.prefix,
        label=issued.label,
        created_at=issued.created_at,
    )


@router.get("/me/api-keys", response_model=list[ApiKeyResponse])
async def list_my_api_keys(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[ApiKeyResponse]:
    """List API keys, newest first (prefix only, never the full key)."""
    keys = await list_api_keys(db, user.id)
    return [
        ApiKeyResponse(
            id=k.id,
            prefix=k.key_prefix,
            label=k.label,
            created_at=k.created_at,
            last_used_at=k.last_used_at,
            revoked_at=k.revoked_at,
        )
        for k in keys
    ]


@router.delete("/me/api-keys/{key_id}", response_model=ApiKeyRevokeResponse)
async def revoke_my_api_key(
    key_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiKeyRevokeResponse:
    """Revoke an API key. Revoking an already revoked key reports ``revoked: false``."""
    revoked = await revoke_api_key(db, user.id, key_id)
    return ApiKeyRevokeResponse(revoked=revoked)
