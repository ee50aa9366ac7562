"""
kudos.services.level_service — Threshold Source
================================================

Loads the active :class:`~kudos.engine.levels.ThresholdCurve`: the explicit
``level_thresholds`` table when it has rows, otherwise the curve generated
from the ``levels.base_jump`` / ``levels.difficulty_pct`` settings.
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from kudos.constants import DEFAULT_BASE_JUMP, DEFAULT_DIFFICULTY_PCT
from kudos.database.models import LevelThreshold
from kudos.engine.levels import ThresholdCurve, validate_overrides
from kudos.services.settings_service import get_number_setting

BASE_JUMP_KEY = "levels.base_jump"
DIFFICULTY_KEY = "levels.difficulty_pct"


def load_curve(session: Session) -> ThresholdCurve:
    rows = session.execute(
        select(LevelThreshold.level, LevelThreshold.min_lifetime_points)
    ).all()
    if rows:
        return ThresholdCurve.from_overrides({r.level: r.min_lifetime_points for r in rows})

    return ThresholdCurve.generated(
        base_jump=get_number_setting(session, BASE_JUMP_KEY, DEFAULT_BASE_JUMP),
        difficulty_pct=get_number_setting(session, DIFFICULTY_KEY, DEFAULT_DIFFICULTY_PCT),
    )


def get_curve(engine) -> ThresholdCurve:
    with Session(engine) as session:
        return load_curve(session)


def replace_overrides(engine, rows: dict[int, int]) -> ThresholdCurve:
    """Replace the override table wholesale; an empty mapping reverts to
    the generated curve.

    Raises
    ------
    ValidationError
        The table is not a valid curve; nothing is written.
    """
    table = validate_overrides(rows) if rows else {}
    with Session(engine) as session:
        session.execute(delete(LevelThreshold))
        for level, points in table.items():
            session.add(LevelThreshold(level=level, min_lifetime_points=points))
        session.commit()
        return load_curve(session)
