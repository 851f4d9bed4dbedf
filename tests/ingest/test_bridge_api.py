"""Bridge endpoint tests: /mcp/ingest, /mcp/resolve-key, session completion."""

from __future__ import annotations

from httpx import AsyncClient

from worldcommits.auth.service import issue_api_key

EVENT = {
    "sessionId": "demo-1",
    "githubUsername": "alice",
    "timestamp": 1_760_000_000_000,
    "promptLength": 12,
    "modelUsed": "gpt-5",
    "linesAddedCount": 5,
    "linesRemovedCount": 1,
    "microSummary": "Wired the ingest endpoint.",
}


class TestIngestEndpoint:
    async def test_ingest_without_providers(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post("/mcp/ingest", json=EVENT, headers=bridge_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["ingest"]["promptCount"] == 1
        assert data["ingest"]["completed"] is False
        assert data["ingest"]["duplicate"] is False
        assert data["rewrite"] == {"rewritten": False, "reason": "rewrite-policy-skip"}

    async def test_completed_event_without_providers(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post(
            "/mcp/ingest", json={**EVENT, "markSessionCompleted": True}, headers=bridge_headers
        )
        data = response.json()
        assert data["ingest"]["completed"] is True
        assert data["rewrite"] == {"rewritten": False, "reason": "provider-not-configured"}

    async def test_duplicate_event_skips_rewrite(self, client: AsyncClient, bridge_headers) -> None:
        event = {**EVENT, "eventId": "evt-abcdef01"}
        await client.post("/mcp/ingest", json=event, headers=bridge_headers)
        response = await client.post("/mcp/ingest", json=event, headers=bridge_headers)
        data = response.json()
        assert data["ingest"]["duplicate"] is True
        assert data["ingest"]["promptCount"] == 1
        assert data["rewrite"]["reason"] == "duplicate-event"

    async def test_invalid_event_rejected(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post(
            "/mcp/ingest", json={**EVENT, "linesAddedCount": -3}, headers=bridge_headers
        )
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    async def test_oversized_counter_rejected_before_write(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post(
            "/mcp/ingest", json={**EVENT, "linesAddedCount": 2**31}, headers=bridge_headers
        )
        assert response.status_code == 422
        feed = (await client.get("/api/v1/posts")).json()
        assert feed["data"] == []

    async def test_long_summary_is_sanitized_not_rejected(self, client: AsyncClient, bridge_headers) -> None:
        summary = "Fixed it. ```" + "x" * 6000 + "```"
        response = await client.post(
            "/mcp/ingest", json={**EVENT, "microSummary": summary}, headers=bridge_headers
        )
        assert response.status_code == 200

        [post] = (await client.get("/api/v1/posts")).json()["data"]
        assert post["timeline"][0]["microSummary"] == "Fixed it."
        assert post["totalLinesAdded"] == 5

    async def test_long_plain_summary_is_capped(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post(
            "/mcp/ingest", json={**EVENT, "microSummary": "word " * 2000}, headers=bridge_headers
        )
        assert response.status_code == 200

        [post] = (await client.get("/api/v1/posts")).json()["data"]
        assert len(post["timeline"][0]["microSummary"]) <= 300

    async def test_requires_service_token(self, client: AsyncClient) -> None:
        response = await client.post("/mcp/ingest", json=EVENT)
        assert response.status_code == 401


class TestResolveKey:
    async def test_resolve_issued_key(self, client: AsyncClient, bridge_headers, db_session, user) -> None:
        issued = await issue_api_key(db_session, user.id)
        response = await client.post("/mcp/resolve-key", json={"api_key": issued.raw_key}, headers=bridge_headers)
        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "userId": user.id,
            "githubUsername": "alice",
            "gitEmail": "alice@example.com",
        }

    async def test_blank_key(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post("/mcp/resolve-key", json={"api_key": "  "}, headers=bridge_headers)
        assert response.status_code == 400

    async def test_unknown_key(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post(
            "/mcp/resolve-key", json={"api_key": "wc_" + "f" * 48}, headers=bridge_headers
        )
        assert response.status_code == 401

    async def test_revoked_key(self, authed_client: AsyncClient, bridge_headers) -> None:
        created = (await authed_client.post("/api/v1/users/me/api-keys", json={})).json()
        await authed_client.delete(f"/api/v1/users/me/api-keys/{created['id']}")
        response = await authed_client.post(
            "/mcp/resolve-key", json={"api_key": created["key"]}, headers=bridge_headers
        )
        assert response.status_code == 401

    async def test_resolve_touches_key(self, authed_client: AsyncClient, bridge_headers) -> None:
        created = (await authed_client.post("/api/v1/users/me/api-keys", json={})).json()
        await authed_client.post("/mcp/resolve-key", json={"api_key": created["key"]}, headers=bridge_headers)
        keys = (await authed_client.get("/api/v1/users/me/api-keys")).json()
        assert keys[0]["lastUsedAt"] is not None


class TestCompleteSession:
    async def test_complete_known_session(self, client: AsyncClient, bridge_headers) -> None:
        await client.post("/mcp/ingest", json=EVENT, headers=bridge_headers)
        response = await client.post("/mcp/sessions/demo-1/complete", headers=bridge_headers)
        assert response.json() == {"updated": True}

    async def test_complete_unknown_session(self, client: AsyncClient, bridge_headers) -> None:
        response = await client.post("/mcp/sessions/missing/complete", headers=bridge_headers)
        assert response.json() == {"updated": False}


async def test_dead_letters_empty(client: AsyncClient, bridge_headers) -> None:
    response = await client.get("/mcp/rewrite-dead-letters", headers=bridge_headers)
    assert response.status_code == 200
    assert response.json() == []
