"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime
from typing import Optional


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_online_time(
    started_at: Optional[datetime],
    finished_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> str:
    """
    Formats how long a target has been (or was) online.

    A save that is still running counts up to `now`.
    """
    if started_at is None:
        return "-"
    end = finished_at or now or datetime.now()
    if end < started_at:
        return "-"
    return format_duration((end - started_at).total_seconds())


def format_timestamp(at: Optional[datetime]) -> str:
    return at.strftime("%Y-%m-%d %H:%M:%S") if at else "-"
