"""
kudos.engine.eligibility — Unlock-State Resolution & Gates
===========================================================

Decides whether a student may use or purchase a catalog item.  Pure: the
caller supplies the catalog entry, the student's level and team flag, the
purchase record and the criteria match.

State precedence (first match wins):

1. competition gate — a ``competition_only`` avatar is LOCKED for students
   outside the competition team, whatever else holds;
2. UNLOCKED_BY_PURCHASE — a custom-unlock row exists;
3. UNLOCKED_BY_CRITERIA — the item links ≥1 criterion and every linked
   criterion is fulfilled;
4. UNLOCKED_DEFAULT — level met, free, not limited-event-only;
5. LOCKED.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass

from kudos.constants import ITEM_AVATAR
from kudos.errors import (
    InsufficientLevel,
    InsufficientPoints,
    ItemDisabled,
    Locked,
    RequiresEligibility,
)


class UnlockState(enum.StrEnum):
    UNLOCKED_DEFAULT = "unlocked_default"
    UNLOCKED_BY_PURCHASE = "unlocked_by_purchase"
    UNLOCKED_BY_CRITERIA = "unlocked_by_criteria"
    LOCKED = "locked"

    @property
    def unlocked(self) -> bool:
        return self is not UnlockState.LOCKED


class PurchaseOutcome(enum.StrEnum):
    UNLOCKED = "unlocked"
    ALREADY_UNLOCKED = "already_unlocked"


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """The catalog fields eligibility depends on."""

    item_type: str
    key: str
    unlock_level: int = 1
    unlock_points: int = 0
    enabled: bool = True
    limited_event_only: bool = False
    competition_only: bool = False
    is_secondary: bool = False
    name: str = ""

    @classmethod
    def from_item(cls, item) -> CatalogEntry:
        return cls(
            item_type=item.item_type,
            key=item.key,
            unlock_level=item.unlock_level or 1,
            unlock_points=max(0, item.unlock_points or 0),
            enabled=bool(item.enabled),
            limited_event_only=bool(item.limited_event_only),
            competition_only=bool(item.competition_only),
            is_secondary=bool(item.is_secondary),
            name=item.name or item.key,
        )

    @property
    def competition_gated(self) -> bool:
        return self.competition_only and self.item_type == ITEM_AVATAR


@dataclass(frozen=True, slots=True)
class CriteriaMatch:
    """Linked criteria of one item versus a student's fulfilled set."""

    linked: frozenset[str] = frozenset()
    fulfilled: frozenset[str] = frozenset()

    @property
    def has_criteria(self) -> bool:
        return bool(self.linked)

    @property
    def satisfied(self) -> bool:
        return bool(self.linked) and self.linked <= self.fulfilled

    @property
    def missing(self) -> frozenset[str]:
        return self.linked - self.fulfilled


NO_CRITERIA = CriteriaMatch()


def match_item_criteria(
    linked: Iterable[str], fulfilled: Iterable[str]
) -> CriteriaMatch:
    """Only the fulfilled keys that are linked to the item are kept."""
    linked_set = frozenset(linked)
    return CriteriaMatch(linked=linked_set, fulfilled=linked_set & frozenset(fulfilled))


# ---------------------------------------------------------------------------
# State resolution
# ---------------------------------------------------------------------------
def is_default_unlocked(
    entry: CatalogEntry, *, level: int, is_competition_team: bool
) -> bool:
    if entry.competition_gated and not is_competition_team:
        return False
    return (
        level >= entry.unlock_level
        and entry.unlock_points == 0
        and not entry.limited_event_only
    )


def resolve_unlock_state(
    entry: CatalogEntry,
    *,
    level: int,
    is_competition_team: bool,
    purchased: bool = False,
    criteria: CriteriaMatch = NO_CRITERIA,
) -> UnlockState:
    """Resolve one item's state for one student (module docstring order).

    ``enabled`` is not considered here; the purchase and equip gates reject
    disabled items before consulting the state.
    """
    if entry.competition_gated and not is_competition_team:
        return UnlockState.LOCKED
    if purchased:
        return UnlockState.UNLOCKED_BY_PURCHASE
    if criteria.satisfied:
        return UnlockState.UNLOCKED_BY_CRITERIA
    if is_default_unlocked(entry, level=level, is_competition_team=is_competition_team):
        return UnlockState.UNLOCKED_DEFAULT
    return UnlockState.LOCKED


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------
def check_purchase(
    entry: CatalogEntry,
    *,
    level: int,
    balance: int,
    is_competition_team: bool,
    already_unlocked: bool,
    criteria: CriteriaMatch = NO_CRITERIA,
) -> PurchaseOutcome:
    """Validate a purchase before any write.

    Returns :attr:`PurchaseOutcome.ALREADY_UNLOCKED` for a repeat purchase
    (a soft success) and :attr:`PurchaseOutcome.UNLOCKED` when the caller
    should insert the unlock row and debit ``entry.unlock_points``.

    Raises
    ------
    ItemDisabled, RequiresEligibility, InsufficientLevel, InsufficientPoints
    """
    if not entry.enabled:
        raise ItemDisabled(f"{entry.item_type} '{entry.key}' is disabled")
    if already_unlocked:
        return PurchaseOutcome.ALREADY_UNLOCKED
    if entry.competition_gated and not is_competition_team:
        raise RequiresEligibility(
            f"{entry.item_type} '{entry.key}' is reserved for the competition team"
        )
    if entry.limited_event_only and criteria.has_criteria and not criteria.satisfied:
        missing = ", ".join(sorted(criteria.missing))
        raise RequiresEligibility(
            f"{entry.item_type} '{entry.key}' requires: {missing}"
        )
    if not criteria.satisfied and level < entry.unlock_level:
        raise InsufficientLevel(
            f"Level {entry.unlock_level} required (current level {level})"
        )
    if entry.unlock_points > 0 and balance < entry.unlock_points:
        raise InsufficientPoints(
            f"{entry.unlock_points} points required (balance {balance})"
        )
    return PurchaseOutcome.UNLOCKED


def check_equip(entry: CatalogEntry, state: UnlockState) -> None:
    """Raise unless *entry* may be equipped in *state*."""
    if not entry.enabled:
        raise ItemDisabled(f"{entry.item_type} '{entry.key}' is disabled")
    if not state.unlocked:
        raise Locked(f"{entry.item_type} '{entry.key}' is locked")


def pick_fallback_avatar(
    entries: Iterable[CatalogEntry], *, level: int, is_competition_team: bool
) -> CatalogEntry | None:
    """First enabled, default-unlocked avatar ordered by (unlock_level, key),
    preferring primary avatars over secondary ones."""
    candidates = sorted(
        (
            e for e in entries
            if e.item_type == ITEM_AVATAR
            and e.enabled
            and is_default_unlocked(e, level=level, is_competition_team=is_competition_team)
        ),
        key=lambda e: (e.unlock_level, e.key),
    )
    primary = [e for e in candidates if not e.is_secondary]
    pool = primary or candidates
    return pool[0] if pool else None
