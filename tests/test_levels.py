"""
tests/test_levels.py — Threshold Curve
=======================================
Pure tests for :mod:`kudos.engine.levels` plus the settings/override
loading in :mod:`kudos.services.level_service`.
"""

from __future__ import annotations

import pytest

from kudos.constants import MAX_LEVEL
from kudos.engine.levels import ThresholdCurve, generate_thresholds, validate_overrides
from kudos.errors import ValidationError
from kudos.services import level_service, settings_service
from kudos.services.ledger_service import get_student_snapshot

from conftest import add_student


class TestGenerateThresholds:
    def test_first_two_levels(self):
        thresholds = generate_thresholds(50, 8)
        assert thresholds[1] == 0
        # round(50 * 1.08 / 10) * 10
        assert thresholds[2] == 50

    def test_third_level_accumulates(self):
        thresholds = generate_thresholds(50, 8)
        # 54 + 58.32 = 112.32 → 110
        assert thresholds[3] == 110

    def test_covers_every_level(self):
        thresholds = generate_thresholds()
        assert sorted(thresholds) == list(range(1, MAX_LEVEL + 1))

    def test_multiples_of_ten_and_non_decreasing(self):
        values = list(generate_thresholds(50, 8).values())
        assert all(v % 10 == 0 for v in values)
        assert values == sorted(values)

    def test_zero_difficulty_is_linear(self):
        thresholds = generate_thresholds(100, 0)
        assert thresholds[2] == 100
        assert thresholds[5] == 400

    def test_negative_base_jump_clamped(self):
        thresholds = generate_thresholds(-10, 8)
        assert set(thresholds.values()) == {0}


class TestThresholdCurve:
    @pytest.fixture
    def curve(self):
        return ThresholdCurve.generated(50, 8)

    def test_effective_level_at_zero(self, curve):
        assert curve.effective_level(0) == 1

    def test_effective_level_just_below_threshold(self, curve):
        assert curve.effective_level(49) == 1
        assert curve.effective_level(50) == 2

    def test_level_of_threshold_round_trips(self, curve):
        for level in range(1, MAX_LEVEL + 1):
            assert curve.effective_level(curve.threshold(level)) == level

    def test_monotonic(self, curve):
        levels = [curve.effective_level(p) for p in range(0, 5000, 7)]
        assert levels == sorted(levels)

    def test_caps_at_max_level(self, curve):
        assert curve.effective_level(10**9) == MAX_LEVEL
        assert curve.next_threshold(10**9) is None

    def test_next_threshold(self, curve):
        assert curve.next_threshold(0) == 50
        assert curve.next_threshold(60) == 110

    def test_overrides_replace_curve(self):
        curve = ThresholdCurve.from_overrides({1: 0, 2: 500, 3: 1000})
        assert curve.overridden
        assert curve.effective_level(499) == 1
        assert curve.effective_level(1000) == 3
        assert curve.max_level == 3
        with pytest.raises(KeyError):
            curve.threshold(4)

    def test_overrides_ignore_out_of_range_levels(self):
        curve = ThresholdCurve.from_overrides({0: 0, 1: 0, 150: 10})
        assert list(curve.thresholds) == [1]

    def test_negative_points_are_level_one(self, curve):
        assert curve.effective_level(-100) == 1


class TestLevelService:
    def test_defaults_from_seeded_settings(self, db_session):
        curve = level_service.load_curve(db_session)
        assert not curve.overridden
        assert curve.threshold(2) == 50

    def test_settings_change_curve(self, db_engine):
        settings_service.upsert_setting(
            db_engine, key=level_service.BASE_JUMP_KEY, value=100, category="levels",
        )
        settings_service.upsert_setting(
            db_engine, key=level_service.DIFFICULTY_KEY, value=0, category="levels",
        )
        assert level_service.get_curve(db_engine).threshold(2) == 100

    def test_non_numeric_setting_falls_back(self, db_engine):
        settings_service.upsert_setting(
            db_engine, key=level_service.BASE_JUMP_KEY, value="lots", category="levels",
        )
        assert level_service.get_curve(db_engine).threshold(2) == 50

    def test_override_table_wins(self, db_engine):
        curve = level_service.replace_overrides(db_engine, {1: 0, 2: 10})
        assert curve.overridden
        assert level_service.get_curve(db_engine).effective_level(10) == 2

    def test_empty_override_reverts(self, db_engine):
        level_service.replace_overrides(db_engine, {1: 0, 2: 10})
        curve = level_service.replace_overrides(db_engine, {})
        assert not curve.overridden
        assert curve.threshold(2) == 50


class TestValidateOverrides:
    def test_valid_table_sorted(self):
        assert list(validate_overrides({3: 200, 1: 0, 2: 100})) == [1, 2, 3]

    def test_equal_neighbours_allowed(self):
        assert validate_overrides({1: 0, 2: 100, 3: 100})[3] == 100

    @pytest.mark.parametrize("rows,message", [
        ({2: 100, 3: 200}, "Level 1"),
        ({1: 10, 2: 100}, "Level 1"),
        ({1: 0, 2: -500}, "negative"),
        ({1: 0, 2: 100, 3: 50}, "below"),
        ({1: 0, 100: 5000}, "between"),
        ({1: 0, 2: "lots"}, "integers"),
    ])
    def test_rejected(self, rows, message):
        with pytest.raises(ValidationError, match=message):
            validate_overrides(rows)


class TestReplaceOverrides:
    def test_decreasing_table_rejected_and_nothing_written(self, db_engine):
        level_service.replace_overrides(db_engine, {1: 0, 2: 10})
        with pytest.raises(ValidationError):
            level_service.replace_overrides(db_engine, {1: 0, 2: 100, 3: 50})

        curve = level_service.get_curve(db_engine)
        assert curve.as_list() == [
            {"level": 1, "min_lifetime_points": 0},
            {"level": 2, "min_lifetime_points": 10},
        ]

    def test_missing_level_one_rejected(self, db_engine):
        with pytest.raises(ValidationError):
            level_service.replace_overrides(db_engine, {2: 100, 3: 200})
        assert not level_service.get_curve(db_engine).overridden

    def test_negative_threshold_rejected(self, db_engine):
        sid = add_student(db_engine)
        with pytest.raises(ValidationError):
            level_service.replace_overrides(db_engine, {1: 0, 2: -500})
        assert get_student_snapshot(db_engine, sid).level == 1

    def test_level_of_threshold_round_trips(self, db_engine):
        curve = level_service.replace_overrides(db_engine, {1: 0, 2: 100, 3: 250, 4: 600})
        for level in range(1, 5):
            assert curve.effective_level(curve.threshold(level)) == level
