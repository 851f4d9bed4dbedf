"""Micro-summary sanitization.

Summaries come from an LLM-driven bridge and end up on a public feed, so
anything that looks like code or a filesystem path is removed before storage.
"""

from __future__ import annotations

import re

MAX_MICRO_SUMMARY_LENGTH = 300

_FENCED_BLOCK = re.compile(r"```[\s\S]*?```")
_UNTERMINATED_FENCE = re.compile(r"```[\s\S]*\Z")
_WHITESPACE = re.compile(r"\s+")
_PATH_LIKE = re.compile(r"\b(?:[A-Za-z]:)?/?[\w.-]+(?:/[\w.-]+)+\b")


def sanitize_micro_summary(summary: str) -> str:
    """Strip code fences, collapse whitespace, redact paths and cap at 300 chars.

    Idempotent: ``sanitize_micro_summary(sanitize_micro_summary(s))`` equals
    ``sanitize_micro_summary(s)``.
    """
    text = _FENCED_BLOCK.sub("", summary)
    text = _UNTERMINATED_FENCE.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    text = _PATH_LIKE.sub("[path]", text).strip()
    return text[:MAX_MICRO_SUMMARY_LENGTH].rstrip()
