"""
kudos.services.challenge_service — Challenge Completion Awards
===============================================================

Resolves a challenge's base points (explicit value, else the tier default),
applies the student's ``challenge_completion_bonus_pct`` and enforces the
repeat-limit state machine from :mod:`kudos.engine.limits`.

The per-student completion flag is always recorded.  A ``ChallengeCompletion``
row (which the limit windows count) is written only when points were
actually awarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kudos.constants import CATEGORY_CHALLENGE, ensure_utc, utcnow
from kudos.database.models import (
    Challenge,
    ChallengeCompletion,
    ChallengeTierDefault,
    StudentChallenge,
)
from kudos.engine.limits import evaluate_repeat_limit
from kudos.engine.modifiers import apply_bonus_pct
from kudos.errors import CatalogInconsistency, NotFound
from kudos.services.ledger_service import (
    StudentSnapshot,
    append_entry,
    get_student_snapshot,
    notify_grant,
    settle,
)
from kudos.services.modifier_service import load_modifier_stack
from kudos.services.student_service import require_student

logger = logging.getLogger(__name__)


@dataclass
class ChallengeResult:
    challenge_id: int
    completed: bool
    points_awarded: int
    snapshot: StudentSnapshot | None
    entry_id: int | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "challenge_id": self.challenge_id,
            "completed": self.completed,
            "points_awarded": self.points_awarded,
            "entry_id": self.entry_id,
            "student": self.snapshot.to_dict() if self.snapshot else None,
            "warnings": list(self.warnings),
        }


def resolve_base_points(session: Session, challenge: Challenge) -> int:
    """Explicit ``points_awarded`` wins; otherwise the tier default; else 0."""
    if challenge.points_awarded is not None:
        return int(challenge.points_awarded)
    if challenge.tier:
        default = session.get(ChallengeTierDefault, challenge.tier)
        if default is not None:
            return int(default.points)
    return 0


def _get_or_create_row(session: Session, student_id: int, challenge_id: int) -> StudentChallenge:
    stmt = select(StudentChallenge).where(
        StudentChallenge.student_id == student_id,
        StudentChallenge.challenge_id == challenge_id,
    )
    row = session.scalar(stmt)
    if row is None:
        try:
            with session.begin_nested():
                row = StudentChallenge(student_id=student_id, challenge_id=challenge_id)
                session.add(row)
                session.flush()
        except IntegrityError:
            row = session.scalar(stmt)
    return row


def _awarded_completions(session: Session, student_id: int, challenge_id: int) -> list[datetime]:
    return list(session.scalars(
        select(ChallengeCompletion.completed_at).where(
            ChallengeCompletion.student_id == student_id,
            ChallengeCompletion.challenge_id == challenge_id,
        )
    ).all())


def complete_challenge(
    engine,
    student_id: int,
    challenge_id: int,
    completed: bool = True,
    *,
    created_by: str | None = None,
    now: datetime | None = None,
) -> ChallengeResult:
    """Mark a challenge (un)completed and award points when allowed.

    Unchecking (``completed=False``) only clears the flag; earlier awards
    stay in the ledger.

    Raises
    ------
    NotFound
        Unknown student or challenge.
    CatalogInconsistency
        The challenge is disabled.
    """
    now = ensure_utc(now) if now is not None else utcnow()
    warnings: list[str] = []
    entry_id: int | None = None
    points = 0

    with Session(engine) as session:
        require_student(session, student_id)
        challenge = session.get(Challenge, challenge_id)
        if challenge is None:
            raise NotFound(f"Challenge {challenge_id} not found")
        if not challenge.enabled:
            raise CatalogInconsistency(f"Challenge '{challenge.name}' is disabled")

        row = _get_or_create_row(session, student_id, challenge_id)
        if not completed:
            row.completed = False
            row.completed_at = None
            row.points_awarded = None
            session.commit()
            return ChallengeResult(
                challenge_id, False, 0, get_student_snapshot(engine, student_id),
            )

        base = resolve_base_points(session, challenge)
        bonus_pct = load_modifier_stack(session, student_id).challenge_completion_bonus_pct
        adjusted = apply_bonus_pct(base, bonus_pct)

        decision = evaluate_repeat_limit(
            challenge.limit_mode,
            challenge.limit_count,
            _awarded_completions(session, student_id, challenge_id),
            now,
            window_days=challenge.limit_window_days,
            daily_limit_count=challenge.daily_limit_count,
        )

        if not decision.allowed:
            warnings.append(decision.warning)
            logger.info(
                "Challenge %d for student %d suppressed: %s",
                challenge_id, student_id, decision.warning,
            )
        elif adjusted != 0:
            note = f"Challenge: {challenge.name}"
            if adjusted != base:
                note += f" (+{bonus_pct:g}% bonus)"
            entry = append_entry(
                session,
                student_id,
                adjusted,
                category=CATEGORY_CHALLENGE,
                note=note,
                created_by=created_by,
            )
            entry_id = entry.id
            points = adjusted
            session.add(ChallengeCompletion(
                student_id=student_id,
                challenge_id=challenge_id,
                completed_at=now,
                tier=challenge.tier,
                points_awarded=points,
                ledger_entry_id=entry_id,
            ))

        row.completed = True
        row.completed_at = now
        row.tier = challenge.tier
        row.points_awarded = points
        session.commit()

    if entry_id is None:
        return ChallengeResult(
            challenge_id, True, 0, get_student_snapshot(engine, student_id), warnings=warnings,
        )

    logger.info(
        "Challenge %d completed by student %d: %+d points", challenge_id, student_id, points,
    )
    snapshot, settle_warnings = settle(engine, student_id, points)
    notify_grant(student_id, entry_id, points, CATEGORY_CHALLENGE, snapshot)
    return ChallengeResult(
        challenge_id, True, points, snapshot, entry_id=entry_id,
        warnings=warnings + settle_warnings,
    )
