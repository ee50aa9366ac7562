"""
kudos.services.catalog_service — Catalog & Criteria Sources
============================================================

Read access to catalog items and to the criteria tables that feed the
eligibility resolver, plus the one criteria write (fulfilment flags).
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kudos.constants import ITEM_TYPES, utcnow
from kudos.database.models import (
    CatalogItem,
    ItemCriterionRequirement,
    StudentCriterionFulfillment,
    UnlockCriterion,
)
from kudos.engine.eligibility import CriteriaMatch, match_item_criteria
from kudos.errors import CatalogInconsistency, NotFound, ValidationError
from kudos.services.student_service import require_student

logger = logging.getLogger(__name__)


def validate_item_type(item_type: str) -> str:
    item_type = (item_type or "").strip().lower()
    if item_type not in ITEM_TYPES:
        raise ValidationError(
            f"Unknown item type '{item_type}' (expected one of {', '.join(ITEM_TYPES)})"
        )
    return item_type


# ---------------------------------------------------------------------------
# Catalog Source
# ---------------------------------------------------------------------------
def get_item(session: Session, item_type: str, key: str) -> CatalogItem:
    """Fetch one item or raise :class:`CatalogInconsistency`."""
    item_type = validate_item_type(item_type)
    item = session.scalar(
        select(CatalogItem).where(
            CatalogItem.item_type == item_type, CatalogItem.key == key
        )
    )
    if item is None:
        raise CatalogInconsistency(f"{item_type} '{key}' does not exist")
    return item


def get_items_by_keys(
    session: Session, pairs: list[tuple[str, str]]
) -> dict[tuple[str, str], CatalogItem]:
    """Bulk lookup keyed by ``(item_type, key)``; unknown pairs are absent."""
    found: dict[tuple[str, str], CatalogItem] = {}
    by_type: dict[str, list[str]] = defaultdict(list)
    for item_type, key in pairs:
        by_type[item_type].append(key)
    for item_type, keys in by_type.items():
        rows = session.scalars(
            select(CatalogItem).where(
                CatalogItem.item_type == item_type, CatalogItem.key.in_(keys)
            )
        ).all()
        for row in rows:
            found[(row.item_type, row.key)] = row
    return found


def list_items(session: Session, item_type: str | None = None) -> list[CatalogItem]:
    stmt = select(CatalogItem).order_by(
        CatalogItem.item_type, CatalogItem.unlock_level, CatalogItem.key
    )
    if item_type is not None:
        stmt = stmt.where(CatalogItem.item_type == validate_item_type(item_type))
    return list(session.scalars(stmt).all())


# ---------------------------------------------------------------------------
# Criteria Source
# ---------------------------------------------------------------------------
def fulfilled_criteria(session: Session, student_id: int) -> set[str]:
    rows = session.scalars(
        select(StudentCriterionFulfillment.criteria_key).where(
            StudentCriterionFulfillment.student_id == student_id,
            StudentCriterionFulfillment.fulfilled.is_(True),
        )
    ).all()
    return set(rows)


def criteria_map(
    session: Session, item_type: str | None = None
) -> dict[tuple[str, str], set[str]]:
    """``(item_type, item_key) → linked criterion keys``.

    Links to disabled criteria are ignored.
    """
    stmt = (
        select(ItemCriterionRequirement)
        .join(UnlockCriterion, UnlockCriterion.key == ItemCriterionRequirement.criteria_key)
        .where(UnlockCriterion.enabled.is_(True))
    )
    if item_type is not None:
        stmt = stmt.where(ItemCriterionRequirement.item_type == item_type)
    links: dict[tuple[str, str], set[str]] = defaultdict(set)
    for req in session.scalars(stmt).all():
        links[(req.item_type, req.item_key)].add(req.criteria_key)
    return dict(links)


def criteria_match_for(
    session: Session, student_id: int, item_type: str, item_key: str
) -> CriteriaMatch:
    linked = criteria_map(session, item_type).get((item_type, item_key), set())
    if not linked:
        return match_item_criteria((), ())
    return match_item_criteria(linked, fulfilled_criteria(session, student_id))


def set_criterion(engine, student_id: int, criteria_key: str, fulfilled: bool = True) -> bool:
    """Record whether *student_id* has fulfilled *criteria_key*.

    Returns the stored flag.
    """
    with Session(engine) as session:
        require_student(session, student_id)
        if session.get(UnlockCriterion, criteria_key) is None:
            raise NotFound(f"Unlock criterion '{criteria_key}' not found")

        row = session.get(StudentCriterionFulfillment, (student_id, criteria_key))
        if row is None:
            try:
                with session.begin_nested():
                    session.add(StudentCriterionFulfillment(
                        student_id=student_id,
                        criteria_key=criteria_key,
                        fulfilled=fulfilled,
                        updated_at=utcnow(),
                    ))
                    session.flush()
            except IntegrityError:
                # Concurrent writer created it first; fall through to update
                row = session.get(StudentCriterionFulfillment, (student_id, criteria_key))
        if row is not None:
            row.fulfilled = fulfilled
        session.commit()

    logger.info(
        "Criterion %s for student %d → %s", criteria_key, student_id, fulfilled,
    )
    return fulfilled
