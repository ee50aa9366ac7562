"""
kudos.services.unlock_service — Purchase, Equip & Loadout
==========================================================

DB side of the eligibility resolver.  Gathers the student's level (derived
from the ledger), purchases and criteria, asks
:mod:`kudos.engine.eligibility` for a decision and persists the outcome.

A purchase inserts the unlock row and its debit entry in one transaction.
Both writes are idempotent (unique unlock row, ledger source key
``unlock_purchase:<student>:<type>:<key>``), so a retried request is safe at
any point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kudos.constants import (
    ITEM_AVATAR,
    ITEM_TYPES,
    SOURCE_UNLOCK,
    ensure_utc,
    unlock_category,
    utcnow,
)
from kudos.database.models import Student, StudentCustomUnlock, StudentLoadout
from kudos.engine.eligibility import (
    CatalogEntry,
    PurchaseOutcome,
    UnlockState,
    check_equip,
    check_purchase,
    match_item_criteria,
    pick_fallback_avatar,
    resolve_unlock_state,
)
from kudos.services import catalog_service
from kudos.services.ledger_service import (
    StudentSnapshot,
    append_entry,
    find_by_source,
    get_student_snapshot,
    ledger_totals,
    settle,
)
from kudos.services.level_service import load_curve
from kudos.services.student_service import require_student

logger = logging.getLogger(__name__)


@dataclass
class PurchaseResult:
    outcome: PurchaseOutcome
    snapshot: StudentSnapshot | None
    points_spent: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "unlocked": True,
            "already_unlocked": self.outcome is PurchaseOutcome.ALREADY_UNLOCKED,
            "points_spent": self.points_spent,
            "student": self.snapshot.to_dict() if self.snapshot else None,
            "warnings": list(self.warnings),
        }


# ---------------------------------------------------------------------------
# Student context shared by every resolution
# ---------------------------------------------------------------------------
@dataclass
class _StudentContext:
    student: Student
    level: int
    balance: int
    purchased: set[tuple[str, str]]
    fulfilled: set[str]
    links: dict[tuple[str, str], set[str]]

    def state_of(self, entry: CatalogEntry) -> UnlockState:
        pair = (entry.item_type, entry.key)
        return resolve_unlock_state(
            entry,
            level=self.level,
            is_competition_team=self.student.is_competition_team,
            purchased=pair in self.purchased,
            criteria=match_item_criteria(self.links.get(pair, ()), self.fulfilled),
        )


def _load_context(session: Session, student_id: int, *, for_update: bool = False) -> _StudentContext:
    student = require_student(session, student_id, for_update=for_update)
    balance, lifetime = ledger_totals(session, student_id)
    purchased = session.execute(
        select(StudentCustomUnlock.item_type, StudentCustomUnlock.item_key).where(
            StudentCustomUnlock.student_id == student_id
        )
    ).all()
    return _StudentContext(
        student=student,
        level=load_curve(session).effective_level(lifetime),
        balance=balance,
        purchased={(r.item_type, r.item_key) for r in purchased},
        fulfilled=catalog_service.fulfilled_criteria(session, student_id),
        links=catalog_service.criteria_map(session),
    )


def _get_unlock(
    session: Session, student_id: int, item_type: str, item_key: str
) -> StudentCustomUnlock | None:
    return session.scalar(
        select(StudentCustomUnlock).where(
            StudentCustomUnlock.student_id == student_id,
            StudentCustomUnlock.item_type == item_type,
            StudentCustomUnlock.item_key == item_key,
        )
    )


def _insert_unlock(session: Session, row: StudentCustomUnlock) -> bool:
    """SAVEPOINT insert; ``False`` when the row already exists."""
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:
        return False
    return True


def purchase_source_id(student_id: int, item_type: str, item_key: str) -> str:
    return f"{student_id}:{item_type}:{item_key}"


# ---------------------------------------------------------------------------
# purchase
# ---------------------------------------------------------------------------
def purchase(
    engine,
    student_id: int,
    item_type: str,
    item_key: str,
    *,
    created_by: str | None = None,
) -> PurchaseResult:
    """Unlock *item_key* for the student, debiting ``unlock_points``.

    A repeat purchase is a soft success (``ALREADY_UNLOCKED``) with no
    second debit.

    Raises
    ------
    NotFound, CatalogInconsistency, ItemDisabled, RequiresEligibility,
    InsufficientLevel, InsufficientPoints
    """
    item_type = catalog_service.validate_item_type(item_type)
    source_id = purchase_source_id(student_id, item_type, item_key)

    with Session(engine) as session:
        ctx = _load_context(session, student_id, for_update=True)
        entry = CatalogEntry.from_item(catalog_service.get_item(session, item_type, item_key))
        existing = _get_unlock(session, student_id, item_type, item_key)

        outcome = check_purchase(
            entry,
            level=ctx.level,
            balance=ctx.balance,
            is_competition_team=ctx.student.is_competition_team,
            already_unlocked=existing is not None,
            criteria=catalog_service.criteria_match_for(session, student_id, item_type, item_key),
        )

        cost = 0
        if outcome is PurchaseOutcome.ALREADY_UNLOCKED:
            # A purchase row whose debit never landed gets it now
            if (
                existing.source == "purchase"
                and existing.points_spent > 0
                and find_by_source(session, SOURCE_UNLOCK, source_id) is None
            ):
                cost = existing.points_spent
        else:
            cost = entry.unlock_points
            inserted = _insert_unlock(session, StudentCustomUnlock(
                student_id=student_id,
                item_type=item_type,
                item_key=item_key,
                source="purchase",
                points_spent=cost,
                created_at=utcnow(),
            ))
            if not inserted:
                # A concurrent request won; its transaction carries the debit
                outcome, cost = PurchaseOutcome.ALREADY_UNLOCKED, 0

        debited = False
        if cost > 0:
            debited = append_entry(
                session,
                student_id,
                -cost,
                category=unlock_category(item_type),
                note=f"Unlock {item_type}: {entry.name} (-{cost})",
                source_type=SOURCE_UNLOCK,
                source_id=source_id,
                created_by=created_by,
            ) is not None
        session.commit()

    if outcome is PurchaseOutcome.UNLOCKED:
        logger.info(
            "Student %d unlocked %s '%s' for %d points", student_id, item_type, item_key, cost,
        )
    elif debited:
        logger.warning(
            "Student %d: re-applied missing debit of %d for %s '%s'",
            student_id, cost, item_type, item_key,
        )

    if debited:
        snapshot, warnings = settle(engine, student_id, -cost)
    else:
        snapshot, warnings = get_student_snapshot(engine, student_id), []
    return PurchaseResult(
        outcome=outcome,
        snapshot=snapshot,
        points_spent=cost if debited else 0,
        warnings=warnings,
    )


def grant_unlock(
    engine, student_id: int, item_type: str, item_key: str, granted_by: str | None = None
) -> bool:
    """Administrative, cost-free unlock.  Returns ``False`` if the student
    already had the item."""
    item_type = catalog_service.validate_item_type(item_type)
    with Session(engine) as session:
        require_student(session, student_id)
        catalog_service.get_item(session, item_type, item_key)
        created = _insert_unlock(session, StudentCustomUnlock(
            student_id=student_id,
            item_type=item_type,
            item_key=item_key,
            source="grant",
            points_spent=0,
            created_by=granted_by,
            created_at=utcnow(),
        ))
        session.commit()
    if created:
        logger.info(
            "Granted %s '%s' to student %d (by %s)", item_type, item_key, student_id, granted_by,
        )
    return created


# ---------------------------------------------------------------------------
# Loadout
# ---------------------------------------------------------------------------
def _get_or_create_loadout(session: Session, student_id: int) -> StudentLoadout:
    loadout = session.get(StudentLoadout, student_id)
    if loadout is None:
        try:
            with session.begin_nested():
                loadout = StudentLoadout(student_id=student_id, updated_at=utcnow())
                session.add(loadout)
                session.flush()
        except IntegrityError:
            loadout = session.get(StudentLoadout, student_id)
    return loadout


def _set_slot(loadout: StudentLoadout, item_type: str, key: str | None, now: datetime) -> None:
    setattr(loadout, f"{item_type}_key", key)
    if item_type == ITEM_AVATAR:
        loadout.avatar_set_at = now


def _loadout_dict(loadout: StudentLoadout | None, student_id: int, changed: list[str]) -> dict:
    data = {"student_id": student_id, "changed": changed}
    for item_type in ITEM_TYPES:
        data[item_type] = loadout.slot_key(item_type) if loadout else None
    data["avatar_set_at"] = (
        ensure_utc(loadout.avatar_set_at).isoformat()
        if loadout and loadout.avatar_set_at else None
    )
    return data


def equip(engine, student_id: int, item_type: str, item_key: str | None) -> dict:
    """Equip *item_key* in its slot; ``None`` clears the slot.

    Raises
    ------
    NotFound, CatalogInconsistency, ItemDisabled, Locked
    """
    item_type = catalog_service.validate_item_type(item_type)
    with Session(engine) as session:
        ctx = _load_context(session, student_id)
        if item_key is not None:
            entry = CatalogEntry.from_item(catalog_service.get_item(session, item_type, item_key))
            check_equip(entry, ctx.state_of(entry))

        loadout = _get_or_create_loadout(session, student_id)
        if loadout.slot_key(item_type) != item_key:
            _set_slot(loadout, item_type, item_key, utcnow())
        session.commit()
        logger.info("Student %d equipped %s → %s", student_id, item_type, item_key)
        return _loadout_dict(loadout, student_id, [])


def get_loadout(engine, student_id: int) -> dict:
    """Current loadout, lazily repairing slots that became ineligible.

    An ineligible or empty avatar slot gets the fallback avatar; other
    ineligible slots are cleared.  Repairs are persisted.
    """
    with Session(engine) as session:
        ctx = _load_context(session, student_id)
        loadout = session.get(StudentLoadout, student_id)
        equipped = [
            (t, loadout.slot_key(t)) for t in ITEM_TYPES if loadout and loadout.slot_key(t)
        ]
        items = catalog_service.get_items_by_keys(session, equipped)

        changed: list[str] = []
        now = utcnow()
        for item_type, key in equipped:
            item = items.get((item_type, key))
            usable = item is not None and item.enabled and ctx.state_of(
                CatalogEntry.from_item(item)
            ).unlocked
            if not usable:
                _set_slot(loadout, item_type, None, now)
                changed.append(item_type)

        if loadout is None or loadout.avatar_key is None:
            avatars = [
                CatalogEntry.from_item(i)
                for i in catalog_service.list_items(session, ITEM_AVATAR)
            ]
            fallback = pick_fallback_avatar(
                avatars, level=ctx.level, is_competition_team=ctx.student.is_competition_team,
            )
            if fallback is not None:
                loadout = loadout or _get_or_create_loadout(session, student_id)
                _set_slot(loadout, ITEM_AVATAR, fallback.key, now)
                if ITEM_AVATAR not in changed:
                    changed.append(ITEM_AVATAR)

        if changed:
            session.commit()
            logger.info("Student %d loadout repaired: %s", student_id, ", ".join(changed))
        return _loadout_dict(loadout, student_id, changed)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
def list_unlock_states(engine, student_id: int, item_type: str | None = None) -> list[dict]:
    """Every catalog item (optionally of one type) with its resolved state."""
    with Session(engine) as session:
        ctx = _load_context(session, student_id)
        result = []
        for item in catalog_service.list_items(session, item_type):
            entry = CatalogEntry.from_item(item)
            linked = ctx.links.get((entry.item_type, entry.key), set())
            result.append({
                "item_type": entry.item_type,
                "key": entry.key,
                "name": entry.name,
                "state": ctx.state_of(entry).value,
                "enabled": entry.enabled,
                "unlock_level": entry.unlock_level,
                "unlock_points": entry.unlock_points,
                "limited_event_only": entry.limited_event_only,
                "competition_only": entry.competition_only,
                "criteria": sorted(linked),
                "missing_criteria": sorted(linked - ctx.fulfilled),
            })
        return result

