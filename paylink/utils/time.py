"""UTC time helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite.

    All timestamps are written in UTC, so a missing tzinfo means UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from ``now`` to ``moment``, never negative."""
    remaining = (ensure_utc(moment) - ensure_utc(now)).total_seconds()
    return max(0, int(remaining))


def default_report_window(now: datetime, days: int = 30) -> tuple[datetime, datetime]:
    """Return the trailing ``days`` window ending at ``now``."""
    return now - timedelta(days=days), now
