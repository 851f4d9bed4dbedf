"""Session JWT and bridge token guard tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from httpx import AsyncClient

from worldcommits.auth.jwt import create_access_token, decode_session_token
from worldcommits.config import get_settings


class TestSessionTokens:
    def test_roundtrip_claims(self) -> None:
        token = create_access_token("user-1", "alice")
        payload = decode_session_token(token)
        assert payload["sub"] == "user-1"
        assert payload["gh"] == "alice"
        assert payload["iss"] == "worldcommits"

    def test_expired_token_rejected(self) -> None:
        settings = get_settings()
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": "user-1", "iat": past, "exp": past + timedelta(minutes=1), "iss": settings.jwt_issuer, "type": "access"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(jwt.InvalidTokenError, match="expired"):
            decode_session_token(token)

    def test_wrong_type_rejected(self) -> None:
        settings = get_settings()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "user-1", "iat": now, "exp": now + timedelta(minutes=5), "iss": settings.jwt_issuer, "type": "refresh"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(jwt.InvalidTokenError, match="Expected token type"):
            decode_session_token(token)

    def test_foreign_signature_rejected(self) -> None:
        token = jwt.encode({"sub": "user-1", "type": "access"}, "another-secret-that-is-long-enough!!", algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            decode_session_token(token)


class TestGuards:
    async def test_invalid_session_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_token_for_unknown_user(self, client: AsyncClient) -> None:
        token = create_access_token("00000000-0000-0000-0000-000000000000")
        response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json() == {"detail": "User not found"}

    async def test_bridge_requires_token(self, client: AsyncClient) -> None:
        response = await client.post("/mcp/resolve-key", json={"api_key": "wc_x"})
        assert response.status_code == 401

    async def test_bridge_rejects_wrong_token(self, client: AsyncClient) -> None:
        response = await client.post(
            "/mcp/resolve-key",
            json={"api_key": "wc_x"},
            headers={"Authorization": "Bearer wrong-token"},
        )
        assert response.status_code == 401

    async def test_bridge_unconfigured_token(self, client: AsyncClient, bridge_headers, monkeypatch) -> None:
        monkeypatch.setenv("WC_INGEST_TOKEN", "")
        get_settings.cache_clear()
        try:
            response = await client.post("/mcp/resolve-key", json={"api_key": "wc_x"}, headers=bridge_headers)
        finally:
            monkeypatch.undo()
            get_settings.cache_clear()
        assert response.status_code == 500
