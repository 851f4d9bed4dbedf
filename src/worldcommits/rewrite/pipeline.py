"""Single-shot copy rewrite for one post.

gate -> pick provider -> load context -> precompute fallback -> prompt
-> generate (time-bounded) -> parse -> apply

A provider that fails, times out or returns unusable text never blocks the
rewrite: the deterministic fallback copy is applied instead.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from worldcommits.config import ProviderConfig, RewriteConfig
from worldcommits.db.models import Post
from worldcommits.ingest.copy import PostCopy, compose_post_copy
from worldcommits.posts.service import recent_summaries, recent_timeline
from worldcommits.rewrite.policy import pick_provider, should_rewrite_now
from worldcommits.rewrite.prompt import build_rewrite_prompt, parse_rewrite_json
from worldcommits.rewrite.providers import TextGenerator, build_generator

logger = structlog.get_logger()

CONTEXT_TIMELINE_WINDOW = 12
FALLBACK_SUMMARY_LIMIT = 3
PROMPT_SUMMARY_LIMIT = 5
MAX_APPLY_ATTEMPTS = 3

GeneratorFactory = Callable[[ProviderConfig], TextGenerator]


@dataclass(frozen=True)
class RewriteRequest:
    post_id: str
    prompt_count: int
    completed: bool


@dataclass(frozen=True)
class RewriteOutcome:
    rewritten: bool
    reason: str | None = None
    provider: str | None = None


POLICY_SKIP = RewriteOutcome(rewritten=False, reason="rewrite-policy-skip")
PROVIDER_NOT_CONFIGURED = RewriteOutcome(rewritten=False, reason="provider-not-configured")
POST_NOT_FOUND = RewriteOutcome(rewritten=False, reason="post-not-found")
REWRITE_ERROR = RewriteOutcome(rewritten=False, reason="rewrite-error")


@dataclass(frozen=True)
class _RewriteContext:
    fallback: PostCopy
    prompt: str


class RewritePipeline:
    """Rewrites a post's title and description through a text-generation provider."""

    def __init__(
        self,
        config: RewriteConfig,
        session_factory: async_sessionmaker[AsyncSession],
        generator_factory: GeneratorFactory | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self._session_factory = session_factory
        self._generator_factory = generator_factory or partial(
            build_generator, timeout=config.provider_timeout_seconds
        )
        self._rng = rng or random.Random()  # noqa: S311
        self._generators: dict[str, TextGenerator] = {}

    def precheck(self, request: RewriteRequest) -> RewriteOutcome | None:
        """Return a skip outcome when no rewrite should happen, else None."""
        if not should_rewrite_now(self.config, request.prompt_count, request.completed):
            return POLICY_SKIP
        if not self.config.providers:
            return PROVIDER_NOT_CONFIGURED
        return None

    async def run(self, request: RewriteRequest) -> RewriteOutcome:
        """Rewrite if due. Never raises; unexpected failures become ``rewrite-error``."""
        try:
            return await self.attempt(request)
        except Exception:
            logger.exception("rewrite_failed", post_id=request.post_id)
            return REWRITE_ERROR

    async def attempt(self, request: RewriteRequest) -> RewriteOutcome:
        """Rewrite if due, propagating storage errors to the caller."""
        skipped = self.precheck(request)
        if skipped is not None:
            return skipped

        provider = pick_provider(self.config, self._rng)
        if provider is None:
            return PROVIDER_NOT_CONFIGURED

        context = await self._load_context(request.post_id)
        if context is None:
            return POST_NOT_FOUND

        copy = await self._generate(provider, context.prompt)
        used_fallback = copy is None
        if copy is None:
            copy = context.fallback

        applied = await self._apply(request.post_id, copy, provider.name)
        if not applied:
            return POST_NOT_FOUND

        logger.info(
            "rewrite_applied",
            post_id=request.post_id,
            provider=provider.name,
            fallback=used_fallback,
        )
        return RewriteOutcome(rewritten=True, provider=provider.name)

    async def _load_context(self, post_id: str) -> _RewriteContext | None:
        async with self._session_factory() as db:
            post = await db.get(Post, post_id)
            if post is None:
                return None
            timeline = await recent_timeline(db, post_id, CONTEXT_TIMELINE_WINDOW)

        fallback = compose_post_copy(
            github_username=post.github_username,
            prompt_count=post.prompt_count,
            high_retry_events_count=post.high_retry_events_count,
            manual_override_count=post.manual_override_count,
            total_lines_added=post.total_lines_added,
            total_lines_removed=post.total_lines_removed,
            recent_summaries=recent_summaries(timeline, FALLBACK_SUMMARY_LIMIT),
        )
        prompt = build_rewrite_prompt(post, recent_summaries(timeline, PROMPT_SUMMARY_LIMIT))
        return _RewriteContext(fallback=fallback, prompt=prompt)

    async def _generate(self, provider: ProviderConfig, prompt: str) -> PostCopy | None:
        generator = self._generator_for(provider)
        try:
            text = await asyncio.wait_for(
                generator.generate(prompt),
                timeout=self.config.provider_timeout_seconds,
            )
        except TimeoutError:
            logger.warning("rewrite_provider_failed", provider=provider.name, reason="timeout")
            return None

        if not text:
            logger.warning("rewrite_provider_failed", provider=provider.name, reason="no-result")
            return None
        copy = parse_rewrite_json(text)
        if copy is None:
            logger.warning("rewrite_provider_failed", provider=provider.name, reason="unparsable")
        return copy

    def _generator_for(self, provider: ProviderConfig) -> TextGenerator:
        generator = self._generators.get(provider.name)
        if generator is None:
            generator = self._generator_factory(provider)
            self._generators[provider.name] = generator
        return generator

    async def _apply(self, post_id: str, copy: PostCopy, provider_name: str) -> bool:
        """Patch copy onto the post, retrying when an ingestion raced the write."""
        for attempt in range(1, MAX_APPLY_ATTEMPTS + 1):
            async with self._session_factory() as db:
                post = await db.get(Post, post_id)
                if post is None:
                    return False
                now = datetime.now(timezone.utc)
                post.title = copy.title
                post.description = copy.description
                post.last_rewrite_at = now
                post.last_rewrite_provider = provider_name
                post.updated_at = now
                try:
                    await db.commit()
                except StaleDataError:
                    await db.rollback()
                    if attempt == MAX_APPLY_ATTEMPTS:
                        raise
                    logger.info("rewrite_conflict_retry", post_id=post_id, attempt=attempt)
                    continue
                return True
        return False  # pragma: no cover

    async def close(self) -> None:
        """Close any provider clients opened by this pipeline."""
        for generator in self._generators.values():
            await generator.close()
        self._generators.clear()
