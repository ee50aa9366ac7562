"""
kudos.engine.limits — Repeat-Limit Windows
===========================================

Pure evaluation of a repeatable reward's limit state machine.  Given the
timestamps of previously *awarded* completions, decide whether one more
award is allowed now.

Modes and their rolling windows (measured back from ``now``):

==========  ==================
once        all time
lifetime    all time
daily       1 day
weekly      7 days
monthly     30 days
yearly      365 days
custom      ``window_days`` days (≤ 0 → no mode limit)
==========  ==================

An independent ``daily_limit_count`` caps awards in the last 24 hours
regardless of mode.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from kudos.constants import ensure_utc


class LimitMode(enum.StrEnum):
    ONCE = "once"
    LIFETIME = "lifetime"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | None) -> LimitMode:
        """Unknown or empty modes behave as ``once``."""
        try:
            return cls((value or "once").strip().lower())
        except ValueError:
            return cls.ONCE


WINDOW_DAYS: dict[LimitMode, int] = {
    LimitMode.DAILY: 1,
    LimitMode.WEEKLY: 7,
    LimitMode.MONTHLY: 30,
    LimitMode.YEARLY: 365,
}

LIMIT_REACHED_WARNING = "Limit reached for this challenge"
DAILY_LIMIT_WARNING = "Daily limit reached for this challenge"


@dataclass(frozen=True, slots=True)
class LimitDecision:
    allowed: bool
    count_in_window: int = 0
    warning: str | None = None


class _Unlimited:
    """Sentinel: the mode imposes no limit at all."""


UNLIMITED = _Unlimited()


def window_start(
    mode: LimitMode, now: datetime, window_days: int | None = None
) -> datetime | None | _Unlimited:
    """Start of the counting window.

    ``None`` means "count every completion ever"; :data:`UNLIMITED` means
    the mode never limits (custom mode without a positive window).
    """
    if mode in (LimitMode.ONCE, LimitMode.LIFETIME):
        return None
    if mode is LimitMode.CUSTOM:
        if not window_days or window_days <= 0:
            return UNLIMITED
        return now - timedelta(days=window_days)
    return now - timedelta(days=WINDOW_DAYS[mode])


def _count_since(completions: list[datetime], since: datetime | None) -> int:
    if since is None:
        return len(completions)
    return sum(1 for ts in completions if ts >= since)


def evaluate_repeat_limit(
    mode: LimitMode | str | None,
    limit_count: int | None,
    completions: Iterable[datetime],
    now: datetime,
    *,
    window_days: int | None = None,
    daily_limit_count: int | None = None,
) -> LimitDecision:
    """Decide whether another award is allowed at *now*.

    *limit_count* is clamped to at least 1.
    """
    mode = mode if isinstance(mode, LimitMode) else LimitMode.parse(mode)
    now = ensure_utc(now)
    stamps = [ensure_utc(ts) for ts in completions]
    limit = max(1, int(limit_count or 1))

    start = window_start(mode, now, window_days)
    count = 0
    if not isinstance(start, _Unlimited):
        count = _count_since(stamps, start)
        if count >= limit:
            return LimitDecision(False, count, LIMIT_REACHED_WARNING)

    if daily_limit_count is not None and daily_limit_count > 0:
        recent = _count_since(stamps, now - timedelta(days=1))
        if recent >= daily_limit_count:
            return LimitDecision(False, count, DAILY_LIMIT_WARNING)

    return LimitDecision(True, count)
