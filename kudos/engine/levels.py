"""
kudos.engine.levels — Threshold Curve
======================================

Pure mapping from lifetime points to a level in ``[1, MAX_LEVEL]``.
No DB I/O; :mod:`kudos.services.level_service` decides whether the curve
comes from the settings table or the explicit override table.

Generated curve::

    threshold(1) = 0
    cumulative  += base_jump * (1 + difficulty_pct/100) ** (L - 1)
    threshold(L) = round_half_up(cumulative / 10) * 10

An override table replaces the generated curve entirely; the two are never
merged.  A valid override table starts at ``1 -> 0`` and never decreases
(:func:`validate_overrides`).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from kudos.constants import (
    DEFAULT_BASE_JUMP,
    DEFAULT_DIFFICULTY_PCT,
    MAX_LEVEL,
    round_half_up,
)
from kudos.errors import ValidationError


def generate_thresholds(
    base_jump: float = DEFAULT_BASE_JUMP,
    difficulty_pct: float = DEFAULT_DIFFICULTY_PCT,
    max_level: int = MAX_LEVEL,
) -> dict[int, int]:
    """Return ``{level: min_lifetime_points}`` for levels ``1..max_level``.

    Values are rounded to the nearest 10 and never decrease.
    """
    base_jump = max(0.0, float(base_jump))
    growth = 1 + float(difficulty_pct) / 100

    thresholds = {1: 0}
    cumulative = 0.0
    previous = 0
    for level in range(2, max_level + 1):
        cumulative += base_jump * growth ** (level - 1)
        value = max(previous, round_half_up(cumulative / 10) * 10)
        thresholds[level] = value
        previous = value
    return thresholds


def validate_overrides(rows: Mapping[int, int]) -> dict[int, int]:
    """Check an override table and return it as ``{level: points}``, sorted.

    Raises
    ------
    ValidationError
        Level 1 missing or not 0, a level outside ``[1, MAX_LEVEL]``, a
        negative point value, or a value lower than the level before it.
    """
    try:
        table = {int(level): int(points) for level, points in rows.items()}
    except (TypeError, ValueError) as exc:
        raise ValidationError("Level thresholds must be integers") from exc

    out_of_range = sorted(lvl for lvl in table if not 1 <= lvl <= MAX_LEVEL)
    if out_of_range:
        raise ValidationError(f"Levels must be between 1 and {MAX_LEVEL}: {out_of_range}")
    if table.get(1) != 0:
        raise ValidationError("Level 1 must start at 0 lifetime points")

    previous = 0
    for level, points in sorted(table.items()):
        if points < 0:
            raise ValidationError(f"Level {level} has a negative threshold ({points})")
        if points < previous:
            raise ValidationError(
                f"Level {level} threshold {points} is below the previous level's {previous}"
            )
        previous = points
    return dict(sorted(table.items()))


# ---------------------------------------------------------------------------
# ThresholdCurve — lookup object handed to services
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ThresholdCurve:
    """Immutable level table with lookup helpers."""

    thresholds: Mapping[int, int]
    overridden: bool = False

    @classmethod
    def generated(
        cls,
        base_jump: float = DEFAULT_BASE_JUMP,
        difficulty_pct: float = DEFAULT_DIFFICULTY_PCT,
    ) -> ThresholdCurve:
        return cls(generate_thresholds(base_jump, difficulty_pct))

    @classmethod
    def from_overrides(cls, rows: Mapping[int, int]) -> ThresholdCurve:
        """Build a curve from explicit ``level → min points`` rows.

        Levels outside ``[1, MAX_LEVEL]`` are ignored.
        """
        table = {
            int(level): int(points)
            for level, points in rows.items()
            if 1 <= int(level) <= MAX_LEVEL
        }
        return cls(dict(sorted(table.items())), overridden=True)

    @property
    def max_level(self) -> int:
        return max(self.thresholds, default=1)

    def threshold(self, level: int) -> int:
        """Minimum lifetime points for *level*.

        Raises ``KeyError`` for a level the table does not define.
        """
        return self.thresholds[level]

    def effective_level(self, lifetime_points: int) -> int:
        """Highest level whose threshold is satisfied; never below 1."""
        best = 1
        for level, required in self.thresholds.items():
            if required <= lifetime_points and level > best:
                best = level
        return best

    def next_threshold(self, lifetime_points: int) -> int | None:
        """Points required for the level after the current one, or ``None``
        at the top of the table."""
        current = self.effective_level(lifetime_points)
        above = [lvl for lvl in self.thresholds if lvl > current]
        if not above:
            return None
        return self.thresholds[min(above)]

    def as_list(self) -> list[dict[str, int]]:
        return [
            {"level": level, "min_lifetime_points": points}
            for level, points in sorted(self.thresholds.items())
        ]
