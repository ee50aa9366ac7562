"""
tests/test_limits.py — Repeat-Limit Windows
============================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from kudos.engine.limits import (
    DAILY_LIMIT_WARNING,
    LIMIT_REACHED_WARNING,
    UNLIMITED,
    LimitMode,
    evaluate_repeat_limit,
    window_start,
)

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


def _ago(**delta) -> datetime:
    return NOW - timedelta(**delta)


class TestWindowStart:
    @pytest.mark.parametrize("mode,days", [
        (LimitMode.DAILY, 1),
        (LimitMode.WEEKLY, 7),
        (LimitMode.MONTHLY, 30),
        (LimitMode.YEARLY, 365),
    ])
    def test_rolling_windows(self, mode, days):
        assert window_start(mode, NOW) == NOW - timedelta(days=days)

    def test_once_and_lifetime_count_everything(self):
        assert window_start(LimitMode.ONCE, NOW) is None
        assert window_start(LimitMode.LIFETIME, NOW) is None

    def test_custom_window(self):
        assert window_start(LimitMode.CUSTOM, NOW, 3) == NOW - timedelta(days=3)

    def test_custom_without_window_is_unlimited(self):
        assert window_start(LimitMode.CUSTOM, NOW, 0) is UNLIMITED
        assert window_start(LimitMode.CUSTOM, NOW, None) is UNLIMITED


class TestEvaluateRepeatLimit:
    def test_first_completion_allowed(self):
        assert evaluate_repeat_limit("daily", 1, [], NOW).allowed

    def test_daily_second_same_day_blocked(self):
        decision = evaluate_repeat_limit("daily", 1, [_ago(hours=2)], NOW)
        assert not decision.allowed
        assert decision.warning == LIMIT_REACHED_WARNING

    def test_daily_allows_after_window(self):
        assert evaluate_repeat_limit("daily", 1, [_ago(hours=25)], NOW).allowed

    def test_weekly_limit_count(self):
        done = [_ago(days=1), _ago(days=3)]
        assert not evaluate_repeat_limit("weekly", 2, done, NOW).allowed
        assert evaluate_repeat_limit("weekly", 3, done, NOW).allowed

    def test_once_blocks_forever(self):
        assert not evaluate_repeat_limit("once", 1, [_ago(days=4000)], NOW).allowed

    def test_limit_count_clamped_to_one(self):
        assert not evaluate_repeat_limit("lifetime", 0, [_ago(days=1)], NOW).allowed

    def test_unknown_mode_behaves_as_once(self):
        assert LimitMode.parse("fortnightly") is LimitMode.ONCE
        assert LimitMode.parse(None) is LimitMode.ONCE
        assert LimitMode.parse(" Weekly ") is LimitMode.WEEKLY

    def test_custom_without_window_never_limited_by_mode(self):
        done = [_ago(minutes=m) for m in range(1, 10)]
        assert evaluate_repeat_limit("custom", 1, done, NOW, window_days=0).allowed

    def test_secondary_daily_cap(self):
        done = [_ago(hours=1), _ago(hours=2)]
        decision = evaluate_repeat_limit(
            "lifetime", 100, done, NOW, daily_limit_count=2,
        )
        assert not decision.allowed
        assert decision.warning == DAILY_LIMIT_WARNING

    def test_naive_timestamps_treated_as_utc(self):
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert not evaluate_repeat_limit("daily", 1, [naive], NOW).allowed
