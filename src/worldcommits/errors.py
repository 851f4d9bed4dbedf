"""Domain error taxonomy.

Each error carries the HTTP status the global handler maps it to. Provider
failures are absent: the rewrite pipeline absorbs them.
"""

from __future__ import annotations


class WorldcommitsError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class Unauthorized(WorldcommitsError):
    """Missing or invalid bearer credential or user session."""

    status_code = 401


class NotFound(WorldcommitsError):
    """Key or post absent, or not owned by the caller."""

    status_code = 404


class ValidationFailure(WorldcommitsError):
    """Malformed input rejected before any write."""

    status_code = 422


class InternalConsistencyError(WorldcommitsError):
    """A row vanished mid-transaction. Indicates a storage isolation bug."""

    status_code = 500
