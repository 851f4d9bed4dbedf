"""Feed copy composition tests."""

from __future__ import annotations

from worldcommits.ingest.copy import compose_post_copy


def _compose(**overrides):
    args = {
        "github_username": "alice",
        "prompt_count": 4,
        "high_retry_events_count": 0,
        "manual_override_count": 0,
        "total_lines_added": 30,
        "total_lines_removed": 7,
        "recent_summaries": [],
    }
    args.update(overrides)
    return compose_post_copy(**args)


class TestTitle:
    def test_steady_ai_guided(self) -> None:
        assert _compose().title == "alice · ai-guided iteration · steady pressure"

    def test_manual_heavy(self) -> None:
        assert "manual-heavy iteration" in _compose(manual_override_count=3).title

    def test_manual_at_half_is_not_heavy(self) -> None:
        assert "ai-guided iteration" in _compose(manual_override_count=2).title

    def test_high_pressure_above_two_retries(self) -> None:
        assert _compose(high_retry_events_count=3).title.endswith("high pressure")
        assert _compose(high_retry_events_count=2).title.endswith("steady pressure")


class TestDescription:
    def test_fallback_without_summaries(self) -> None:
        assert _compose().description == "Prompts: 4. Lines +30 / -7."

    def test_joins_up_to_three_non_empty(self) -> None:
        copy = _compose(recent_summaries=["one", "", "two", "three", "four"])
        assert copy.description == "one two three"

    def test_truncated_to_300(self) -> None:
        copy = _compose(recent_summaries=["a" * 200, "b" * 200])
        assert len(copy.description) == 300

    def test_deterministic(self) -> None:
        assert _compose(recent_summaries=["x"]) == _compose(recent_summaries=["x"])
