"""
kudos.services.roulette_service — Prize-Wheel Spins
====================================================

A spin is recorded when the wheel stops and granted when staff confirm it.
Confirmation is an externally-retriable grant keyed by
``(roulette_spin, <spin id>)``: confirming twice never pays twice.
"""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from kudos.constants import CATEGORY_ROULETTE, SOURCE_ROULETTE, utcnow
from kudos.database.models import RouletteSpin
from kudos.errors import NotFound, ValidationError
from kudos.services.ledger_service import (
    GrantResult,
    append_entry,
    find_by_source,
    get_student_snapshot,
    notify_grant,
    settle,
)
from kudos.services.student_service import require_student

logger = logging.getLogger(__name__)


def record_spin(
    engine,
    student_id: int,
    points_delta: int,
    *,
    segment_label: str | None = None,
    prize_text: str | None = None,
    wheel_name: str = "Prize Wheel",
) -> int:
    """Store an unconfirmed spin result and return its id."""
    if isinstance(points_delta, bool) or not isinstance(points_delta, int):
        raise ValidationError(f"points_delta must be an integer, got {points_delta!r}")
    with Session(engine) as session:
        require_student(session, student_id)
        spin = RouletteSpin(
            student_id=student_id,
            wheel_name=(wheel_name or "Prize Wheel")[:100],
            segment_label=segment_label,
            points_delta=points_delta,
            prize_text=prize_text,
            created_at=utcnow(),
        )
        session.add(spin)
        session.commit()
        logger.info("Recorded spin %d for student %d (%+d)", spin.id, student_id, points_delta)
        return spin.id


def confirm_spin(engine, spin_id: int, confirmed_by: str | None = None) -> GrantResult:
    """Grant a spin's points once.  Re-confirmation is a soft success with
    ``duplicate=True``."""
    with Session(engine) as session:
        spin = session.get(RouletteSpin, spin_id)
        if spin is None:
            raise NotFound(f"Roulette spin {spin_id} not found")
        student_id, delta = spin.student_id, spin.points_delta
        label = spin.segment_label or spin.prize_text or f"{delta:+d}"

        entry_id = None
        if delta != 0:
            entry = append_entry(
                session,
                student_id,
                delta,
                category=CATEGORY_ROULETTE,
                note=f"{spin.wheel_name}: {label}",
                source_type=SOURCE_ROULETTE,
                source_id=str(spin_id),
                created_by=confirmed_by,
            )
            entry_id = entry.id if entry is not None else None

        first_confirmation = session.execute(
            update(RouletteSpin)
            .where(RouletteSpin.id == spin_id, RouletteSpin.confirmed_at.is_(None))
            .values(confirmed_at=utcnow(), confirmed_by=confirmed_by)
        ).rowcount == 1

        previous = None
        if entry_id is None:
            previous = find_by_source(session, SOURCE_ROULETTE, str(spin_id))
            previous = (previous.id, previous.points) if previous is not None else None
        session.commit()

    if entry_id is None:
        if previous is not None or not first_confirmation:
            return GrantResult(
                snapshot=get_student_snapshot(engine, student_id),
                entry_id=previous[0] if previous else None,
                points=previous[1] if previous else 0,
                duplicate=True,
            )
        # Zero-point segment: confirmed, nothing to grant
        return GrantResult(snapshot=get_student_snapshot(engine, student_id))

    logger.info("Spin %d confirmed for student %d: %+d", spin_id, student_id, delta)
    snapshot, warnings = settle(engine, student_id, delta)
    notify_grant(student_id, entry_id, delta, CATEGORY_ROULETTE, snapshot)
    return GrantResult(snapshot=snapshot, entry_id=entry_id, points=delta, warnings=warnings)
