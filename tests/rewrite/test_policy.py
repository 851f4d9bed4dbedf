"""Tests for the rewrite gate and provider selection."""

from __future__ import annotations

import random

import pytest

from worldcommits.config import ProviderConfig, RewriteConfig
from worldcommits.rewrite.policy import pick_provider, should_rewrite_now

OPENAI = ProviderConfig(name="openai", api_key="sk-test", model="gpt-4o-mini", base_url="https://openai.test/v1")
GEMINI = ProviderConfig(name="google", api_key="g-test", model="gemini-1.5-flash", base_url="https://gemini.test/v1beta")


class TestShouldRewriteNow:
    @pytest.mark.parametrize("count", [5, 10, 15])
    def test_every_nth_prompt_fires(self, count: int) -> None:
        config = RewriteConfig(rewrite_every_n_prompts=5)
        assert should_rewrite_now(config, count, completed=False)

    @pytest.mark.parametrize("count", [1, 4, 6, 14])
    def test_between_multiples_skips(self, count: int) -> None:
        config = RewriteConfig(rewrite_every_n_prompts=5)
        assert not should_rewrite_now(config, count, completed=False)

    def test_completion_always_fires(self) -> None:
        assert should_rewrite_now(RewriteConfig(), 3, completed=True)

    def test_disabled_by_default(self) -> None:
        assert not should_rewrite_now(RewriteConfig(), 10, completed=False)

    def test_every_prompt(self) -> None:
        config = RewriteConfig(rewrite_on_every_prompt=True)
        assert should_rewrite_now(config, 1, completed=False)


class TestPickProvider:
    def test_no_providers(self) -> None:
        assert pick_provider(RewriteConfig(), random.Random(1)) is None

    def test_first_provider_without_randomization(self) -> None:
        config = RewriteConfig(providers=[OPENAI, GEMINI])
        for seed in range(10):
            assert pick_provider(config, random.Random(seed)) is OPENAI

    def test_single_provider_with_randomization(self) -> None:
        config = RewriteConfig(randomize_provider=True, providers=[GEMINI])
        assert pick_provider(config, random.Random(7)) is GEMINI

    def test_randomization_reaches_both(self) -> None:
        config = RewriteConfig(randomize_provider=True, providers=[OPENAI, GEMINI])
        rng = random.Random(42)
        picked = {pick_provider(config, rng).name for _ in range(50)}  # type: ignore[union-attr]
        assert picked == {"openai", "google"}
