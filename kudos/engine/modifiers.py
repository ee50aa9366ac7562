"""
kudos.engine.modifiers — Modifier Stack Resolver
=================================================

Combines the modifier fields of a student's equipped cosmetic items into a
single :class:`ModifierStack`.  Pure; the service layer loads the records.

Combination rules:

* Multiplicative fields (1.0 = no effect): deltas from baseline are summed,
  never multiplied together — ``max(0, 1 + Σ(value - 1))``.
* ``daily_free_points``: each item contributes ``max(0, round(value))``.
* Percentage fields: each item contributes ``max(0, value)``; the sum is
  not capped here.

Items that are disabled or do not define a field contribute nothing.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, fields

from kudos.constants import MULTIPLIER_CATEGORIES, round_half_up

MULTIPLIER_FIELDS = (
    "rule_keeper_multiplier",
    "rule_breaker_multiplier",
    "skill_pulse_multiplier",
    "spotlight_multiplier",
)
PERCENT_FIELDS = (
    "challenge_completion_bonus_pct",
    "mvp_bonus_pct",
)


@dataclass(frozen=True, slots=True)
class ModifierRecord:
    """Modifier fields of one equipped item.  ``None`` = not defined."""

    item_key: str = ""
    enabled: bool = True
    rule_keeper_multiplier: float | None = None
    rule_breaker_multiplier: float | None = None
    skill_pulse_multiplier: float | None = None
    spotlight_multiplier: float | None = None
    daily_free_points: float | None = None
    challenge_completion_bonus_pct: float | None = None
    mvp_bonus_pct: float | None = None

    @classmethod
    def from_item(cls, item) -> ModifierRecord:
        """Build a record from any object carrying the modifier attributes
        (typically a :class:`~kudos.database.models.CatalogItem`)."""
        names = [f.name for f in fields(cls) if f.name not in ("item_key", "enabled")]
        values = {name: getattr(item, name, None) for name in names}
        return cls(
            item_key=getattr(item, "key", ""),
            enabled=bool(getattr(item, "enabled", True)),
            **values,
        )


@dataclass(frozen=True, slots=True)
class ModifierStack:
    """Combined modifiers for one student."""

    rule_keeper_multiplier: float = 1.0
    rule_breaker_multiplier: float = 1.0
    skill_pulse_multiplier: float = 1.0
    spotlight_multiplier: float = 1.0
    daily_free_points: int = 0
    challenge_completion_bonus_pct: float = 0.0
    mvp_bonus_pct: float = 0.0

    def multiplier_for(self, category: str) -> float | None:
        """Combined multiplier for a stacked ledger category, else ``None``."""
        field_name = MULTIPLIER_CATEGORIES.get(category)
        if field_name is None:
            return None
        return getattr(self, field_name)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


NEUTRAL_STACK = ModifierStack()


def _usable(value: float | None) -> bool:
    return value is not None and math.isfinite(float(value))


def combine_modifiers(records: Iterable[ModifierRecord]) -> ModifierStack:
    """Fold *records* into a :class:`ModifierStack`.

    Order-independent: every rule is a sum, taken with :func:`math.fsum` so
    the result is bit-identical for any ordering of *records*.
    """
    deltas: dict[str, list[float]] = {name: [] for name in MULTIPLIER_FIELDS}
    percents: dict[str, list[float]] = {name: [] for name in PERCENT_FIELDS}
    daily = 0

    for record in records:
        if not record.enabled:
            continue
        for name in MULTIPLIER_FIELDS:
            value = getattr(record, name)
            if _usable(value):
                deltas[name].append(float(value) - 1)
        for name in PERCENT_FIELDS:
            value = getattr(record, name)
            if _usable(value):
                percents[name].append(max(0.0, float(value)))
        if _usable(record.daily_free_points):
            daily += max(0, round_half_up(float(record.daily_free_points)))

    return ModifierStack(
        **{name: max(0.0, 1 + math.fsum(values)) for name, values in deltas.items()},
        daily_free_points=daily,
        **{name: math.fsum(values) for name, values in percents.items()},
    )


# ---------------------------------------------------------------------------
# Applying combined values to a grant
# ---------------------------------------------------------------------------
def apply_multiplier(points: int, multiplier: float) -> int:
    """Scale *points* by *multiplier*, rounding the magnitude half-up and
    keeping the sign (``-10 × 1.25 → -13``)."""
    magnitude = round_half_up(abs(points) * multiplier)
    return -magnitude if points < 0 else magnitude


def apply_bonus_pct(points: int, bonus_pct: float) -> int:
    """Apply a percentage bonus; only positive awards are boosted."""
    if bonus_pct <= 0 or points <= 0:
        return points
    return round_half_up(points * (1 + bonus_pct / 100))
