"""
kudos.services.daily_service — Daily Free Points
=================================================

Equipped items may define ``daily_free_points``.  A student can claim the
combined amount once per 24 hours, measured from the later of the last
claim and the last avatar change.  The claim is a conditional increment of
``student_loadouts.daily_claim_seq``, so concurrent claims pay once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from kudos.constants import CATEGORY_AVATAR_DAILY, SOURCE_DAILY, ensure_utc, utcnow
from kudos.database.models import StudentLoadout
from kudos.errors import EligibilityError
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

CLAIM_INTERVAL = timedelta(hours=24)


@dataclass
class DailyRedeemResult:
    points_awarded: int
    next_available_at: datetime
    snapshot: StudentSnapshot | None
    entry_id: int | None = None
    duplicate: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "points_awarded": self.points_awarded,
            "next_available_at": self.next_available_at.isoformat(),
            "entry_id": self.entry_id,
            "duplicate": self.duplicate,
            "student": self.snapshot.to_dict() if self.snapshot else None,
            "warnings": list(self.warnings),
        }


def next_claim_at(loadout: StudentLoadout) -> datetime | None:
    """When the next claim opens, or ``None`` if it is open already."""
    anchors = [
        ensure_utc(ts)
        for ts in (loadout.avatar_daily_granted_at, loadout.avatar_set_at)
        if ts is not None
    ]
    if not anchors:
        return None
    return max(anchors) + CLAIM_INTERVAL


def redeem_daily_points(
    engine, student_id: int, *, now: datetime | None = None
) -> DailyRedeemResult:
    """Claim today's free points.

    Raises
    ------
    NotFound
        Unknown student.
    EligibilityError
        No avatar equipped, no daily points on the loadout, or the 24 h
        window has not elapsed.
    """
    now = ensure_utc(now) if now is not None else utcnow()

    with Session(engine) as session:
        require_student(session, student_id)
        loadout = session.get(StudentLoadout, student_id)
        if loadout is None or not loadout.avatar_key:
            raise EligibilityError("Equip an avatar before claiming daily points")

        amount = load_modifier_stack(session, student_id).daily_free_points
        if amount <= 0:
            raise EligibilityError("Your equipped items do not grant daily points")

        opens_at = next_claim_at(loadout)
        if opens_at is not None and now < opens_at:
            raise EligibilityError(
                f"Daily points already claimed; next claim at {opens_at.isoformat()}"
            )

        seq = loadout.daily_claim_seq
        claimed = session.execute(
            update(StudentLoadout)
            .where(StudentLoadout.student_id == student_id, StudentLoadout.daily_claim_seq == seq)
            .values(daily_claim_seq=seq + 1, avatar_daily_granted_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if not claimed:
            session.rollback()
            logger.info("Daily claim for student %d lost a race; treating as claimed", student_id)
            return DailyRedeemResult(
                0, now + CLAIM_INTERVAL, get_student_snapshot(engine, student_id), duplicate=True,
            )

        entry = append_entry(
            session,
            student_id,
            amount,
            category=CATEGORY_AVATAR_DAILY,
            note="Daily free points",
            source_type=SOURCE_DAILY,
            source_id=f"{student_id}:{seq + 1}",
        )
        entry_id = entry.id if entry is not None else None
        session.commit()

    if entry_id is None:
        return DailyRedeemResult(
            0, now + CLAIM_INTERVAL, get_student_snapshot(engine, student_id), duplicate=True,
        )
    logger.info("Student %d claimed %d daily points", student_id, amount)
    snapshot, warnings = settle(engine, student_id, amount)
    notify_grant(student_id, entry_id, amount, CATEGORY_AVATAR_DAILY, snapshot)
    return DailyRedeemResult(
        amount, now + CLAIM_INTERVAL, snapshot, entry_id=entry_id, warnings=warnings,
    )
