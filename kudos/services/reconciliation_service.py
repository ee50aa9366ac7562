"""
kudos.services.reconciliation_service — Aggregate Reconciliation
=================================================================

Periodic job that validates every student's cached aggregates against the
ledger and repairs drift left behind by incremental fallbacks.

How it works:
    1. Sum ``points`` and positive ``points`` per student from ``ledger``.
    2. Compare with the stored ``points_balance`` / ``lifetime_points`` /
       ``level`` columns.
    3. Recompute every mismatching student.
    4. Log all corrections for audit.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, case, func, select
from sqlalchemy.orm import Session

from kudos.database.models import LedgerEntry, Student
from kudos.errors import RecomputeUnavailable
from kudos.services.ledger_service import recompute
from kudos.services.level_service import load_curve

logger = logging.getLogger(__name__)


def reconcile_aggregates(engine: Engine) -> dict:
    """Validate stored aggregates against the ledger and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...],
    "timestamp": ...}``.
    """
    corrections: list[dict] = []

    with Session(engine) as session:
        totals = (
            select(
                LedgerEntry.student_id,
                func.sum(LedgerEntry.points).label("balance"),
                func.sum(
                    case((LedgerEntry.points > 0, LedgerEntry.points), else_=0)
                ).label("lifetime"),
            )
            .group_by(LedgerEntry.student_id)
            .subquery()
        )
        rows = session.execute(
            select(
                Student.id,
                Student.points_balance,
                Student.lifetime_points,
                Student.level,
                func.coalesce(totals.c.balance, 0).label("balance"),
                func.coalesce(totals.c.lifetime, 0).label("lifetime"),
            ).outerjoin(totals, totals.c.student_id == Student.id)
        ).all()
        curve = load_curve(session)

    checked = 0
    for row in rows:
        checked += 1
        actual_level = curve.effective_level(int(row.lifetime))
        if (
            row.points_balance == row.balance
            and row.lifetime_points == row.lifetime
            and row.level == actual_level
        ):
            continue
        try:
            recompute(engine, row.id)
        except RecomputeUnavailable:
            logger.exception("Reconciliation could not recompute student %d", row.id)
            continue
        corrections.append({
            "student_id": row.id,
            "stored": {
                "points_balance": row.points_balance,
                "lifetime_points": row.lifetime_points,
                "level": row.level,
            },
            "actual": {
                "points_balance": int(row.balance),
                "lifetime_points": int(row.lifetime),
                "level": actual_level,
            },
        })

    if corrections:
        logger.warning(
            "Aggregate reconciliation: corrected %d/%d students: %s",
            len(corrections), checked, [c["student_id"] for c in corrections],
        )
    else:
        logger.info("Aggregate reconciliation: %d students checked, no drift.", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
