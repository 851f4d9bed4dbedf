"""Rewrite gate and provider selection."""

from __future__ import annotations

import random

from worldcommits.config import ProviderConfig, RewriteConfig


def should_rewrite_now(config: RewriteConfig, prompt_count: int, completed: bool) -> bool:
    """Completion always rewrites; otherwise every prompt or every Nth prompt, per config."""
    if completed:
        return True
    if config.rewrite_on_every_prompt:
        return True
    every_n = config.rewrite_every_n_prompts
    return every_n > 0 and prompt_count % every_n == 0


def pick_provider(config: RewriteConfig, rng: random.Random) -> ProviderConfig | None:
    """Choose a backend for one rewrite.

    With two providers and randomization on, the choice is uniform per call;
    otherwise the first configured provider wins.
    """
    providers = config.providers
    if not providers:
        return None
    if config.randomize_provider and len(providers) >= 2:
        return rng.choice(providers[:2])
    return providers[0]
