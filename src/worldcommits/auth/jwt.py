"""
Session JWT handling (HS256, shared secret).

Tokens are minted by the sign-in collaborator after GitHub OAuth; this service
only needs to verify them. ``create_access_token`` exists so that collaborator
(and the test suite) share one token format.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from worldcommits.config import get_settings

SESSION_TOKEN_TYPE = "access"
_REQUIRED_CLAIMS = ["sub", "exp", "iat", "iss"]


def create_access_token(user_id: str, github_username: str | None = None) -> str:
    """
    Mint a session token for a signed-in user.

    Args:
        user_id: Primary key of the ``users`` row.
        github_username: GitHub handle carried as the ``gh`` claim, if known.
    """
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": user_id,
        "gh": github_username,
        "type": SESSION_TOKEN_TYPE,
        "iss": settings.jwt_issuer,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.jwt_access_token_expire_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str, expected_type: str = SESSION_TOKEN_TYPE) -> dict[str, Any]:
    """
    Check signature, issuer, expiry and token type, then return the claims.

    Raises:
        jwt.InvalidTokenError: On any failed check. Expiry is reported as
            "Token has expired" so clients can tell it apart.
    """
    settings = get_settings()
    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        raise jwt.InvalidTokenError("Token has expired") from None

    token_type = claims.get("type")
    if token_type != expected_type:
        raise jwt.InvalidTokenError(f"Expected token type '{expected_type}', got '{token_type}'")
    return claims
