"""
kudos.services.gift_service — Gift Inventory & Opening
=======================================================

Students hold quantities of gift items.  Opening one unit advances
``opened_qty`` with a conditional update guarded by the value last read, so
two concurrent opens can never consume the same unit.  The points grant is
keyed by ``(gift_open, <student gift id>:<unit no>)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from kudos.constants import CATEGORY_GIFT, SOURCE_GIFT, ensure_utc, utcnow
from kudos.database.models import GiftItem, GiftOpenEvent, StudentGift
from kudos.errors import ConcurrencyConflict, GiftUnavailable, NotFound, ValidationError
from kudos.services.ledger_service import (
    StudentSnapshot,
    append_entry,
    get_student_snapshot,
    ledger_totals,
    notify_grant,
    settle,
)
from kudos.services.student_service import require_student

logger = logging.getLogger(__name__)

MAX_OPEN_ATTEMPTS = 3


@dataclass
class GiftOpenResult:
    student_gift_id: int
    points_awarded: int
    remaining: int
    snapshot: StudentSnapshot | None
    entry_id: int | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "student_gift_id": self.student_gift_id,
            "points_awarded": self.points_awarded,
            "remaining": self.remaining,
            "entry_id": self.entry_id,
            "student": self.snapshot.to_dict() if self.snapshot else None,
            "warnings": list(self.warnings),
        }


def grant_gift(
    engine,
    student_id: int,
    gift_item_id: int,
    qty: int = 1,
    *,
    expires_at: datetime | None = None,
    granted_by: str | None = None,
) -> int:
    """Give a student *qty* units of a gift item; returns the row id."""
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise ValidationError("qty must be a positive integer")
    with Session(engine) as session:
        require_student(session, student_id)
        item = session.get(GiftItem, gift_item_id)
        if item is None:
            raise NotFound(f"Gift item {gift_item_id} not found")
        gift = StudentGift(
            student_id=student_id,
            gift_item_id=gift_item_id,
            qty=qty,
            opened_qty=0,
            expires_at=ensure_utc(expires_at),
            granted_by=granted_by,
            updated_at=utcnow(),
        )
        session.add(gift)
        session.commit()
        logger.info("Gave %d × %s to student %d", qty, item.name, student_id)
        return gift.id


def _claim_unit(session: Session, student_gift_id: int, read: int, now: datetime) -> int:
    """Advance ``opened_qty`` from *read* to *read + 1*; returns the unit number.

    Raises :class:`ConcurrencyConflict` when another open moved the counter
    first.
    """
    result = session.execute(
        update(StudentGift)
        .where(StudentGift.id == student_gift_id, StudentGift.opened_qty == read)
        .values(opened_qty=read + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict(f"Gift {student_gift_id} was opened concurrently")
    return read + 1


def open_gift(
    engine,
    student_id: int,
    student_gift_id: int,
    opened_by: str | None = None,
    *,
    now: datetime | None = None,
) -> GiftOpenResult:
    """Open one unit of a student's gift.

    Raises
    ------
    NotFound
        Unknown student, or the gift does not belong to the student.
    GiftUnavailable
        Disabled, expired, fully opened, or still contended after
        ``MAX_OPEN_ATTEMPTS`` conditional updates.
    """
    now = ensure_utc(now) if now is not None else utcnow()

    for attempt in range(1, MAX_OPEN_ATTEMPTS + 1):
        with Session(engine) as session:
            require_student(session, student_id)
            gift = session.get(StudentGift, student_gift_id)
            if gift is None or gift.student_id != student_id:
                raise NotFound(f"Gift {student_gift_id} not found for student {student_id}")
            if not gift.enabled or not gift.gift_item.enabled:
                raise GiftUnavailable("This gift is not available")
            if gift.expires_at is not None and ensure_utc(gift.expires_at) <= now:
                if gift.expired_at is None:
                    gift.expired_at = now
                    session.commit()
                raise GiftUnavailable("This gift has expired")

            read = gift.opened_qty
            if read >= gift.qty:
                raise GiftUnavailable("No unopened gifts left")

            try:
                unit_no = _claim_unit(session, student_gift_id, read, now)
            except ConcurrencyConflict:
                session.rollback()
                logger.info(
                    "Gift %d open contended (attempt %d/%d)",
                    student_gift_id, attempt, MAX_OPEN_ATTEMPTS,
                )
                continue

            item = gift.gift_item
            points = int(item.points_value or 0)
            before, _ = ledger_totals(session, student_id)

            entry_id = None
            if points != 0:
                entry = append_entry(
                    session,
                    student_id,
                    points,
                    category=CATEGORY_GIFT,
                    note=f"Gift: {item.name}",
                    source_type=SOURCE_GIFT,
                    source_id=f"{student_gift_id}:{unit_no}",
                    created_by=opened_by,
                )
                entry_id = entry.id if entry is not None else None
            awarded = points if entry_id is not None else 0

            session.add(GiftOpenEvent(
                student_id=student_id,
                student_gift_id=student_gift_id,
                gift_item_id=item.id,
                points_awarded=awarded,
                points_before_open=before,
                points_after_open=before + awarded,
                ledger_entry_id=entry_id,
                created_at=now,
            ))
            remaining = gift.qty - unit_no
            session.commit()
            break
    else:
        raise GiftUnavailable("Gift is being opened elsewhere; try again")

    logger.info(
        "Student %d opened gift %d unit %d: %+d", student_id, student_gift_id, unit_no, awarded,
    )
    if entry_id is None:
        return GiftOpenResult(
            student_gift_id, 0, remaining, get_student_snapshot(engine, student_id),
        )
    snapshot, warnings = settle(engine, student_id, awarded)
    notify_grant(student_id, entry_id, awarded, CATEGORY_GIFT, snapshot)
    return GiftOpenResult(
        student_gift_id, awarded, remaining, snapshot, entry_id=entry_id, warnings=warnings,
    )
