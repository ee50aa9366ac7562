"""
tests/test_modifiers.py — Modifier Stack Combination
=====================================================
"""

from __future__ import annotations

import itertools
from types import SimpleNamespace

import pytest

from kudos.engine.modifiers import (
    NEUTRAL_STACK,
    ModifierRecord,
    apply_bonus_pct,
    apply_multiplier,
    combine_modifiers,
)


class TestCombineModifiers:
    def test_empty_is_neutral(self):
        assert combine_modifiers([]) == NEUTRAL_STACK

    def test_multiplier_deltas_sum(self):
        stack = combine_modifiers([
            ModifierRecord(rule_keeper_multiplier=1.2),
            ModifierRecord(rule_keeper_multiplier=1.1),
        ])
        assert stack.rule_keeper_multiplier == pytest.approx(1.3)

    def test_multipliers_do_not_compound(self):
        stack = combine_modifiers([
            ModifierRecord(spotlight_multiplier=2.0),
            ModifierRecord(spotlight_multiplier=2.0),
        ])
        assert stack.spotlight_multiplier == pytest.approx(3.0)

    def test_combined_multiplier_floored_at_zero(self):
        stack = combine_modifiers([
            ModifierRecord(rule_breaker_multiplier=0.2),
            ModifierRecord(rule_breaker_multiplier=0.3),
        ])
        assert stack.rule_breaker_multiplier == 0.0

    def test_order_independent(self):
        records = [
            ModifierRecord(rule_keeper_multiplier=1.2, daily_free_points=3),
            ModifierRecord(rule_keeper_multiplier=0.9, mvp_bonus_pct=5),
            ModifierRecord(challenge_completion_bonus_pct=10, skill_pulse_multiplier=1.5),
        ]
        stacks = [combine_modifiers(list(o)) for o in itertools.permutations(records)]
        for stack in stacks[1:]:
            assert stack == stacks[0]

    def test_fractional_sums_identical_in_any_order(self):
        records = [
            ModifierRecord(mvp_bonus_pct=0.1, rule_keeper_multiplier=1.1),
            ModifierRecord(mvp_bonus_pct=0.2, rule_keeper_multiplier=1.2),
            ModifierRecord(mvp_bonus_pct=0.3, rule_keeper_multiplier=1.3),
        ]
        stacks = [combine_modifiers(list(o)) for o in itertools.permutations(records)]
        assert all(stack.mvp_bonus_pct == 0.6 for stack in stacks)
        assert len({stack.rule_keeper_multiplier for stack in stacks}) == 1

    def test_daily_points_rounded_and_clamped_per_item(self):
        stack = combine_modifiers([
            ModifierRecord(daily_free_points=2.5),
            ModifierRecord(daily_free_points=-4),
            ModifierRecord(daily_free_points=1),
        ])
        assert stack.daily_free_points == 4

    def test_percentages_clamped_per_item_but_uncapped(self):
        stack = combine_modifiers([
            ModifierRecord(challenge_completion_bonus_pct=80),
            ModifierRecord(challenge_completion_bonus_pct=70),
            ModifierRecord(challenge_completion_bonus_pct=-50),
        ])
        assert stack.challenge_completion_bonus_pct == 150

    def test_disabled_items_ignored(self):
        stack = combine_modifiers([
            ModifierRecord(rule_keeper_multiplier=2.0, enabled=False),
            ModifierRecord(mvp_bonus_pct=10, enabled=False),
        ])
        assert stack == NEUTRAL_STACK

    def test_undefined_fields_contribute_nothing(self):
        stack = combine_modifiers([ModifierRecord(rule_keeper_multiplier=1.5)])
        assert stack.rule_breaker_multiplier == 1.0
        assert stack.spotlight_multiplier == 1.0

    def test_from_item_reads_catalog_attributes(self):
        item = SimpleNamespace(
            key="fox", enabled=True,
            rule_keeper_multiplier=1.25, rule_breaker_multiplier=None,
            skill_pulse_multiplier=None, spotlight_multiplier=None,
            daily_free_points=5, challenge_completion_bonus_pct=None, mvp_bonus_pct=None,
        )
        record = ModifierRecord.from_item(item)
        assert record.item_key == "fox"
        assert record.rule_keeper_multiplier == 1.25
        assert record.daily_free_points == 5

    def test_multiplier_for_category(self):
        stack = combine_modifiers([ModifierRecord(rule_keeper_multiplier=1.2)])
        assert stack.multiplier_for("rule_keeper") == pytest.approx(1.2)
        assert stack.multiplier_for("spotlight") == 1.0
        assert stack.multiplier_for("manual") is None


class TestApplyMultiplier:
    def test_stacked_rule_keeper_grant(self):
        stack = combine_modifiers([
            ModifierRecord(rule_keeper_multiplier=1.2),
            ModifierRecord(rule_keeper_multiplier=1.1),
        ])
        assert apply_multiplier(10, stack.rule_keeper_multiplier) == 13

    def test_negative_keeps_sign(self):
        assert apply_multiplier(-10, 1.25) == -13

    def test_half_rounds_up(self):
        assert apply_multiplier(5, 1.5) == 8

    def test_zero_multiplier(self):
        assert apply_multiplier(10, 0.0) == 0


class TestApplyBonusPct:
    def test_completion_bonus(self):
        assert apply_bonus_pct(10, 15) == 12

    def test_no_bonus(self):
        assert apply_bonus_pct(10, 0) == 10

    def test_negative_points_untouched(self):
        assert apply_bonus_pct(-10, 50) == -10
