"""Bridge-facing endpoints, authenticated with the static ingest token."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worldcommits.auth.dependencies import require_service_token
from worldcommits.auth.service import resolve_api_key, touch_api_key
from worldcommits.database import get_session
from worldcommits.errors import Unauthorized
from worldcommits.ingest.schemas import (
    CompleteSessionResponse,
    DeadLetterResponse,
    IngestResponse,
    IngestResultResponse,
    ResolveKeyRequest,
    ResolveKeyResponse,
    RewriteOutcomeResponse,
    TelemetryEvent,
)
from worldcommits.ingest.service import complete_session, ingest_event
from worldcommits.rewrite.dispatcher import get_dispatcher, get_pipeline, list_dead_letters
from worldcommits.rewrite.pipeline import RewriteOutcome, RewriteRequest

router = APIRouter(prefix="/mcp", tags=["Bridge"], dependencies=[Depends(require_service_token)])

DUPLICATE_EVENT = RewriteOutcome(rewritten=False, reason="duplicate-event")


@router.post("/ingest", response_model=IngestResponse, response_model_exclude_none=True)
async def ingest(
    event: TelemetryEvent,
    db: AsyncSession = Depends(get_session),
) -> IngestResponse:
    """Apply one telemetry event, then rewrite the post's copy if due."""
    result = await ingest_event(db, event)

    if result.duplicate:
        outcome = DUPLICATE_EVENT
    else:
        request = RewriteRequest(
            post_id=result.post_id,
            prompt_count=result.prompt_count,
            completed=result.completed,
        )
        dispatcher = get_dispatcher()
        if dispatcher is not None:
            outcome = await dispatcher.dispatch(request)
        else:
            outcome = await get_pipeline().run(request)

    return IngestResponse(
        ingest=IngestResultResponse(
            post_id=result.post_id,
            prompt_count=result.prompt_count,
            completed=result.completed,
            duplicate=result.duplicate,
        ),
        rewrite=RewriteOutcomeResponse(
            rewritten=outcome.rewritten,
            reason=outcome.reason,
            provider=outcome.provider,
        ),
    )


@router.post("/resolve-key", response_model=ResolveKeyResponse)
async def resolve_key(
    body: ResolveKeyRequest,
    db: AsyncSession = Depends(get_session),
) -> ResolveKeyResponse:
    """Resolve a user's API key to the identity the bridge attributes events to."""
    raw_key = body.api_key.strip()
    if not raw_key:
        raise HTTPException(status_code=400, detail="Missing api_key")

    identity = await resolve_api_key(db, raw_key)
    if identity is None:
        raise Unauthorized("Invalid API key")

    await touch_api_key(db, identity.key_id)
    return ResolveKeyResponse(
        user_id=identity.user_id,
        github_username=identity.github_username,
        git_email=identity.git_email,
    )


@router.post("/sessions/{session_id}/complete", response_model=CompleteSessionResponse)
async def complete(
    session_id: str,
    db: AsyncSession = Depends(get_session),
) -> CompleteSessionResponse:
    """Mark a session completed without an accompanying event."""
    updated = await complete_session(db, session_id)
    return CompleteSessionResponse(updated=updated)


@router.get("/rewrite-dead-letters", response_model=list[DeadLetterResponse])
async def rewrite_dead_letters(
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
) -> list[DeadLetterResponse]:
    """Background rewrites that exhausted their attempts, newest first."""
    letters = await list_dead_letters(db, limit)
    return [
        DeadLetterResponse(
            id=d.id,
            post_id=d.post_id,
            prompt_count=d.prompt_count,
            completed=d.completed,
            attempts=d.attempts,
            error=d.error,
            created_at=d.created_at.isoformat(),
        )
        for d in letters
    ]
