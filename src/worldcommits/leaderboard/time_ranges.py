"""Leaderboard time-window boundaries.

Boundaries are local midnights in the configured leaderboard timezone:
today, the most recent Monday, and the first of the month.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Literal

TimeRange = Literal["today", "week", "month", "all"]
TIME_RANGES: tuple[str, ...] = ("today", "week", "month", "all")


def _start_date(time_range: str, today: date) -> date | None:
    if time_range == "today":
        return today
    if time_range == "week":
        return today - timedelta(days=today.weekday())
    if time_range == "month":
        return today.replace(day=1)
    if time_range == "all":
        return None
    raise ValueError(f"Unknown time range: {time_range}")


def get_time_range_cutoff(
    time_range: str,
    now: datetime | None = None,
    tz: tzinfo = timezone.utc,
) -> int | None:
    """Epoch-ms cutoff for ``time_range``, or None for ``all``.

    Raises:
        ValueError: If ``time_range`` is not one of today/week/month/all.
    """
    if now is None:
        now = datetime.now(tz)
    start = _start_date(time_range, now.astimezone(tz).date())
    if start is None:
        return None
    return int(datetime.combine(start, time.min, tzinfo=tz).timestamp() * 1000)
