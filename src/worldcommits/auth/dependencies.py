"""FastAPI authentication dependencies."""

from __future__ import annotations

import secrets

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.auth.jwt import decode_session_token
from worldcommits.config import get_settings
from worldcommits.database import get_session
from worldcommits.db.models import User

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Extract and verify the session JWT, return the User model.

    Raises 401 on a missing, invalid or orphaned token.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_session_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await db.get(User, str(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_service_token(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """
    Guard for bridge-to-service calls authenticated with the static ingest token.

    Returns 500 when no token is configured so a misconfigured deployment is
    never silently open.
    """
    expected = get_settings().ingest_token
    if not expected:
        raise HTTPException(status_code=500, detail="Ingest token is not configured")
    if credentials is None or not secrets.compare_digest(credentials.credentials.strip(), expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
