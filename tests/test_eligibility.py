"""
tests/test_eligibility.py — Unlock-State Resolution & Gates
============================================================
Pure tests for :mod:`kudos.engine.eligibility`.
"""

from __future__ import annotations

import pytest

from kudos.engine.eligibility import (
    CatalogEntry,
    PurchaseOutcome,
    UnlockState,
    check_equip,
    check_purchase,
    match_item_criteria,
    pick_fallback_avatar,
    resolve_unlock_state,
)
from kudos.errors import (
    InsufficientLevel,
    InsufficientPoints,
    ItemDisabled,
    Locked,
    RequiresEligibility,
)


def _entry(**overrides) -> CatalogEntry:
    fields = {"item_type": "avatar", "key": "fox"}
    fields.update(overrides)
    return CatalogEntry(**fields)


class TestCriteriaMatch:
    def test_no_links_never_satisfied(self):
        match = match_item_criteria([], ["belt_yellow"])
        assert not match.has_criteria
        assert not match.satisfied

    def test_all_links_required(self):
        match = match_item_criteria(["a", "b"], ["a"])
        assert not match.satisfied
        assert match.missing == {"b"}

    def test_all_fulfilled(self):
        assert match_item_criteria(["a", "b"], ["a", "b", "c"]).satisfied


class TestResolveUnlockState:
    def test_default_when_level_met_and_free(self):
        state = resolve_unlock_state(_entry(unlock_level=3), level=3, is_competition_team=False)
        assert state is UnlockState.UNLOCKED_DEFAULT

    def test_locked_below_level(self):
        state = resolve_unlock_state(_entry(unlock_level=5), level=4, is_competition_team=False)
        assert state is UnlockState.LOCKED

    def test_priced_item_needs_purchase(self):
        entry = _entry(unlock_points=50)
        assert resolve_unlock_state(entry, level=10, is_competition_team=False) is UnlockState.LOCKED
        assert resolve_unlock_state(
            entry, level=10, is_competition_team=False, purchased=True,
        ) is UnlockState.UNLOCKED_BY_PURCHASE

    def test_limited_event_never_unlocked_by_level(self):
        entry = _entry(limited_event_only=True)
        assert resolve_unlock_state(entry, level=99, is_competition_team=False) is UnlockState.LOCKED

    def test_limited_event_unlocked_by_criteria(self):
        entry = _entry(limited_event_only=True, unlock_level=50)
        state = resolve_unlock_state(
            entry, level=1, is_competition_team=False,
            criteria=match_item_criteria(["camp_2026"], ["camp_2026"]),
        )
        assert state is UnlockState.UNLOCKED_BY_CRITERIA

    def test_competition_gate_overrides_purchase(self):
        entry = _entry(competition_only=True)
        state = resolve_unlock_state(entry, level=10, is_competition_team=False, purchased=True)
        assert state is UnlockState.LOCKED

    def test_competition_member_gets_default(self):
        entry = _entry(competition_only=True)
        state = resolve_unlock_state(entry, level=1, is_competition_team=True)
        assert state is UnlockState.UNLOCKED_DEFAULT

    def test_competition_flag_only_gates_avatars(self):
        entry = _entry(item_type="effect", competition_only=True)
        state = resolve_unlock_state(entry, level=1, is_competition_team=False)
        assert state is UnlockState.UNLOCKED_DEFAULT

    def test_purchase_takes_precedence_over_criteria(self):
        state = resolve_unlock_state(
            _entry(), level=1, is_competition_team=False, purchased=True,
            criteria=match_item_criteria(["a"], ["a"]),
        )
        assert state is UnlockState.UNLOCKED_BY_PURCHASE


class TestCheckPurchase:
    def _check(self, entry, **kwargs):
        params = {
            "level": 1, "balance": 0, "is_competition_team": False, "already_unlocked": False,
        }
        params.update(kwargs)
        return check_purchase(entry, **params)

    def test_disabled(self):
        with pytest.raises(ItemDisabled):
            self._check(_entry(enabled=False))

    def test_already_unlocked_is_soft_success(self):
        outcome = self._check(_entry(unlock_points=999), already_unlocked=True)
        assert outcome is PurchaseOutcome.ALREADY_UNLOCKED

    def test_insufficient_points(self):
        with pytest.raises(InsufficientPoints):
            self._check(_entry(unlock_points=50), balance=40)

    def test_exact_balance_is_enough(self):
        assert self._check(_entry(unlock_points=50), balance=50) is PurchaseOutcome.UNLOCKED

    def test_insufficient_level(self):
        with pytest.raises(InsufficientLevel):
            self._check(_entry(unlock_level=5), level=4, balance=100)

    def test_criteria_bypass_level(self):
        outcome = self._check(
            _entry(unlock_level=50), level=1,
            criteria=match_item_criteria(["a"], ["a"]),
        )
        assert outcome is PurchaseOutcome.UNLOCKED

    def test_competition_only_requires_team(self):
        with pytest.raises(RequiresEligibility):
            self._check(_entry(competition_only=True))

    def test_limited_event_with_unmet_criteria(self):
        with pytest.raises(RequiresEligibility, match="camp_2026"):
            self._check(
                _entry(limited_event_only=True),
                criteria=match_item_criteria(["camp_2026"], []),
            )

    def test_limited_event_without_criteria_can_be_bought(self):
        outcome = self._check(_entry(limited_event_only=True, unlock_points=10), balance=10)
        assert outcome is PurchaseOutcome.UNLOCKED

    def test_free_item_at_zero_balance(self):
        assert self._check(_entry(), balance=-20) is PurchaseOutcome.UNLOCKED


class TestCheckEquip:
    def test_locked_rejected(self):
        with pytest.raises(Locked):
            check_equip(_entry(), UnlockState.LOCKED)

    def test_disabled_rejected_even_if_purchased(self):
        with pytest.raises(ItemDisabled):
            check_equip(_entry(enabled=False), UnlockState.UNLOCKED_BY_PURCHASE)

    def test_unlocked_passes(self):
        check_equip(_entry(), UnlockState.UNLOCKED_BY_CRITERIA)


class TestPickFallbackAvatar:
    def test_prefers_primary_lowest_level(self):
        entries = [
            _entry(key="owl", unlock_level=2),
            _entry(key="bear", unlock_level=1, is_secondary=True),
            _entry(key="cat", unlock_level=1),
            _entry(key="ant", unlock_level=1, enabled=False),
        ]
        choice = pick_fallback_avatar(entries, level=5, is_competition_team=False)
        assert choice.key == "cat"

    def test_falls_back_to_secondary(self):
        entries = [_entry(key="bear", is_secondary=True)]
        assert pick_fallback_avatar(entries, level=1, is_competition_team=False).key == "bear"

    def test_skips_priced_and_event_items(self):
        entries = [
            _entry(key="gold", unlock_points=10),
            _entry(key="camp", limited_event_only=True),
        ]
        assert pick_fallback_avatar(entries, level=1, is_competition_team=False) is None
