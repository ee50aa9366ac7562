"""
kudos.services.ledger_service — Ledger Store, Recompute & Grant
================================================================

The ledger is an append-only journal of signed point deltas.  Student
aggregate columns (``points_balance``, ``lifetime_points``, ``level``) are a
cache derived from it and are written **only** by :func:`recompute` (or by
its incremental fallback in :func:`settle`).

Every orchestrator follows the same shape::

    with Session(engine) as session:
        entry = append_entry(session, ...)   # durable fact
        ...                                  # orchestrator bookkeeping
        session.commit()
    snapshot, warnings = settle(engine, student_id, delta)
    dispatch_post_grant(...)

Idempotency for externally-retriable grants is keyed on
``(source_type, source_id)``: a pre-check finds earlier entries and the
partial unique index ``ix_ledger_source_idempotent`` is the backstop.  A
constraint hit inside the SAVEPOINT means "already granted", never an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kudos.constants import (
    CATEGORY_MANUAL,
    MAX_CATEGORY_LENGTH,
    MAX_NOTE_LENGTH,
    ensure_utc,
    utcnow,
)
from kudos.database.models import LedgerEntry, Student
from kudos.engine.levels import ThresholdCurve
from kudos.engine.modifiers import apply_multiplier
from kudos.errors import InvalidAmount, RecomputeUnavailable, ValidationError
from kudos.services.hooks import GrantEvent, dispatch_post_grant
from kudos.services.level_service import load_curve
from kudos.services.modifier_service import load_modifier_stack
from kudos.services.student_service import require_student

logger = logging.getLogger(__name__)

RECOMPUTE_FALLBACK_WARNING = (
    "Aggregates updated incrementally; a later recompute will reconcile them"
)
AGGREGATES_STALE_WARNING = "Aggregates could not be refreshed"
MULTIPLIER_ZERO_WARNING = "Modifier reduced the grant to 0 points; nothing recorded"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StudentSnapshot:
    """Aggregates of one student as returned to callers."""

    student_id: int
    points_balance: int
    lifetime_points: int
    level: int
    next_level_at: int | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "points_balance": self.points_balance,
            "lifetime_points": self.lifetime_points,
            "level": self.level,
            "next_level_at": self.next_level_at,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class GrantResult:
    snapshot: StudentSnapshot | None
    entry_id: int | None = None
    points: int = 0
    duplicate: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "student": self.snapshot.to_dict() if self.snapshot else None,
            "entry_id": self.entry_id,
            "points": self.points,
            "duplicate": self.duplicate,
            "warnings": list(self.warnings),
        }


def _snapshot(student: Student, curve: ThresholdCurve) -> StudentSnapshot:
    # Level is derived from lifetime points on every read; the column is a cache
    return StudentSnapshot(
        student_id=student.id,
        points_balance=student.points_balance,
        lifetime_points=student.lifetime_points,
        level=curve.effective_level(student.lifetime_points),
        next_level_at=curve.next_threshold(student.lifetime_points),
        updated_at=ensure_utc(student.aggregates_updated_at),
    )


# ---------------------------------------------------------------------------
# Input normalisation
# ---------------------------------------------------------------------------
def validate_points(points) -> int:
    if isinstance(points, bool) or not isinstance(points, int):
        raise InvalidAmount(f"Points must be an integer, got {points!r}")
    if points == 0:
        raise InvalidAmount("Points must be non-zero")
    return points


def normalize_category(category: str | None) -> str:
    category = (category or "").strip().lower()
    return category[:MAX_CATEGORY_LENGTH] or CATEGORY_MANUAL


def normalize_source(
    source_type: str | None, source_id: str | int | None
) -> tuple[str | None, str | None]:
    source_type = (source_type or "").strip() or None
    source_id = str(source_id).strip() if source_id is not None else None
    source_id = source_id or None
    if (source_type is None) != (source_id is None):
        raise ValidationError("source_type and source_id must be given together")
    return source_type, source_id


# ---------------------------------------------------------------------------
# Ledger Store
# ---------------------------------------------------------------------------
def find_by_source(
    session: Session, source_type: str, source_id: str
) -> LedgerEntry | None:
    return session.scalar(
        select(LedgerEntry).where(
            LedgerEntry.source_type == source_type,
            LedgerEntry.source_id == source_id,
        )
    )


def append_entry(
    session: Session,
    student_id: int,
    points: int,
    *,
    category: str = CATEGORY_MANUAL,
    note: str = "",
    source_type: str | None = None,
    source_id: str | None = None,
    created_by: str | None = None,
    points_base: int | None = None,
    points_multiplier: float | None = None,
) -> LedgerEntry | None:
    """Add one entry to the open transaction.

    Returns ``None`` when ``(source_type, source_id)`` was already recorded;
    the outer transaction is left usable in that case.
    """
    validate_points(points)
    source_type, source_id = normalize_source(source_type, source_id)
    entry = LedgerEntry(
        student_id=student_id,
        points=points,
        points_base=points_base,
        points_multiplier=points_multiplier,
        category=normalize_category(category),
        source_type=source_type,
        source_id=source_id,
        note=(note or "").strip()[:MAX_NOTE_LENGTH],
        created_by=created_by,
        created_at=utcnow(),
    )

    if source_type is None:
        session.add(entry)
        session.flush()
        return entry

    if find_by_source(session, source_type, source_id) is not None:
        return None
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(entry)
            session.flush()
    except IntegrityError:
        # A concurrent writer inserted the same source first
        logger.info("Ledger source %s:%s already granted", source_type, source_id)
        return None
    return entry


def ledger_totals(session: Session, student_id: int) -> tuple[int, int]:
    """``(Σ points, Σ max(0, points))`` over the student's entries."""
    row = session.execute(
        select(
            func.coalesce(func.sum(LedgerEntry.points), 0),
            func.coalesce(
                func.sum(case((LedgerEntry.points > 0, LedgerEntry.points), else_=0)), 0
            ),
        ).where(LedgerEntry.student_id == student_id)
    ).one()
    return int(row[0]), int(row[1])


# ---------------------------------------------------------------------------
# Recompute Service
# ---------------------------------------------------------------------------
def _recompute_in_session(session: Session, student_id: int) -> StudentSnapshot:
    require_student(session, student_id)
    balance, lifetime = ledger_totals(session, student_id)
    curve = load_curve(session)
    now = utcnow()
    # One UPDATE for all three columns, so a concurrent recompute can never
    # leave a mix of two snapshots behind
    session.execute(
        update(Student)
        .where(Student.id == student_id)
        .values(
            points_balance=balance,
            lifetime_points=lifetime,
            level=curve.effective_level(lifetime),
            aggregates_updated_at=now,
        )
    )
    return StudentSnapshot(
        student_id=student_id,
        points_balance=balance,
        lifetime_points=lifetime,
        level=curve.effective_level(lifetime),
        next_level_at=curve.next_threshold(lifetime),
        updated_at=now,
    )


def recompute(engine, student_id: int) -> StudentSnapshot:
    """Re-derive the student's aggregates from the ledger and store them.

    Raises
    ------
    NotFound
        Unknown student.
    RecomputeUnavailable
        The database rejected the recompute.
    """
    try:
        with Session(engine) as session:
            snapshot = _recompute_in_session(session, student_id)
            session.commit()
    except SQLAlchemyError as exc:
        raise RecomputeUnavailable(f"Recompute failed for student {student_id}") from exc
    return snapshot


def _apply_incremental(engine, student_id: int, delta: int) -> StudentSnapshot:
    with Session(engine) as session:
        session.execute(
            update(Student)
            .where(Student.id == student_id)
            .values(
                points_balance=Student.points_balance + delta,
                lifetime_points=Student.lifetime_points + max(0, delta),
            )
        )
        session.commit()
        student = require_student(session, student_id)
        return _snapshot(student, load_curve(session))


def settle(
    engine, student_id: int, delta: int
) -> tuple[StudentSnapshot | None, list[str]]:
    """Bring aggregates in line after a committed ledger write.

    Never raises for aggregate failures; the ledger entry is already
    durable and a later recompute repairs any drift.
    """
    try:
        return recompute(engine, student_id), []
    except RecomputeUnavailable:
        logger.warning(
            "Recompute unavailable for student %d; applying delta %+d incrementally",
            student_id, delta, exc_info=True,
        )

    try:
        return _apply_incremental(engine, student_id, delta), [RECOMPUTE_FALLBACK_WARNING]
    except SQLAlchemyError:
        logger.exception("Incremental aggregate update failed for student %d", student_id)
        return None, [RECOMPUTE_FALLBACK_WARNING, AGGREGATES_STALE_WARNING]


def notify_grant(
    student_id: int,
    entry_id: int | None,
    points: int,
    category: str,
    snapshot: StudentSnapshot | None,
) -> None:
    """Hand a committed entry to the post-grant hooks."""
    if entry_id is None:
        return
    dispatch_post_grant(GrantEvent(
        student_id=student_id,
        entry_id=entry_id,
        points=points,
        category=category,
        balance=snapshot.points_balance if snapshot else None,
        lifetime_points=snapshot.lifetime_points if snapshot else None,
        level=snapshot.level if snapshot else None,
    ))


# ---------------------------------------------------------------------------
# grant — the general award entry point
# ---------------------------------------------------------------------------
def grant(
    engine,
    student_id: int,
    points: int,
    category: str = CATEGORY_MANUAL,
    note: str = "",
    source_type: str | None = None,
    source_id: str | int | None = None,
    *,
    created_by: str | None = None,
) -> GrantResult:
    """Append a point delta for a student and return the fresh snapshot.

    For modifier-stacked categories (``rule_keeper``, ``rule_breaker``,
    ``spotlight``) the student's combined multiplier scales the delta and the
    entry records ``points_base`` and ``points_multiplier``.

    Raises
    ------
    InvalidAmount
        *points* is zero or not an integer.
    ValidationError
        Only one of *source_type* / *source_id* was given.
    NotFound
        Unknown student.
    """
    validate_points(points)
    source_type, source_id = normalize_source(source_type, source_id)
    category = normalize_category(category)

    with Session(engine) as session:
        require_student(session, student_id)

        if source_type is not None:
            existing = find_by_source(session, source_type, source_id)
            if existing is not None:
                return GrantResult(
                    snapshot=_snapshot(require_student(session, student_id), load_curve(session)),
                    entry_id=existing.id,
                    points=existing.points,
                    duplicate=True,
                )

        base, multiplier = points, None
        combined = load_modifier_stack(session, student_id).multiplier_for(category)
        if combined is not None:
            multiplier = combined
            points = apply_multiplier(base, combined)
            if points == 0:
                logger.info(
                    "Grant of %+d (%s) to student %d reduced to 0 by modifiers",
                    base, category, student_id,
                )
                return GrantResult(
                    snapshot=_snapshot(require_student(session, student_id), load_curve(session)),
                    warnings=[MULTIPLIER_ZERO_WARNING],
                )

        entry = append_entry(
            session,
            student_id,
            points,
            category=category,
            note=note,
            source_type=source_type,
            source_id=source_id,
            created_by=created_by,
            points_base=base if multiplier is not None else None,
            points_multiplier=multiplier,
        )
        if entry is None:
            session.rollback()
            existing = find_by_source(session, source_type, source_id)
            return GrantResult(
                snapshot=_snapshot(require_student(session, student_id), load_curve(session)),
                entry_id=existing.id if existing else None,
                points=existing.points if existing else 0,
                duplicate=True,
            )
        entry_id = entry.id
        session.commit()

    logger.info(
        "Granted %+d (%s) to student %d [entry %d]",
        points, category, student_id, entry_id,
    )
    snapshot, warnings = settle(engine, student_id, points)
    notify_grant(student_id, entry_id, points, category, snapshot)
    return GrantResult(snapshot=snapshot, entry_id=entry_id, points=points, warnings=warnings)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_student_snapshot(engine, student_id: int) -> StudentSnapshot:
    with Session(engine) as session:
        return _snapshot(require_student(session, student_id), load_curve(session))


def list_ledger(engine, student_id: int, limit: int = 50) -> list[dict]:
    """Entries newest first."""
    limit = max(1, min(int(limit), 500))
    with Session(engine) as session:
        require_student(session, student_id)
        rows = session.scalars(
            select(LedgerEntry)
            .where(LedgerEntry.student_id == student_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .limit(limit)
        ).all()
        return [
            {
                "id": r.id,
                "points": r.points,
                "points_base": r.points_base,
                "points_multiplier": r.points_multiplier,
                "category": r.category,
                "source_type": r.source_type,
                "source_id": r.source_id,
                "note": r.note,
                "created_by": r.created_by,
                "created_at": ensure_utc(r.created_at).isoformat(),
            }
            for r in rows
        ]
