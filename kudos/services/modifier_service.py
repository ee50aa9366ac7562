"""
kudos.services.modifier_service — Equipped-Item Modifier Loading
=================================================================

Reads a student's loadout, fetches the equipped catalog items and hands
their modifier records to :func:`kudos.engine.modifiers.combine_modifiers`.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from kudos.constants import ITEM_TYPES
from kudos.database.models import StudentLoadout
from kudos.engine.modifiers import (
    NEUTRAL_STACK,
    ModifierRecord,
    ModifierStack,
    combine_modifiers,
)
from kudos.services.catalog_service import get_items_by_keys
from kudos.services.student_service import require_student


def equipped_pairs(loadout: StudentLoadout | None) -> list[tuple[str, str]]:
    if loadout is None:
        return []
    pairs = []
    for item_type in ITEM_TYPES:
        key = loadout.slot_key(item_type)
        if key:
            pairs.append((item_type, key))
    return pairs


def load_modifier_stack(session: Session, student_id: int) -> ModifierStack:
    """Combined modifiers of the student's equipped, enabled items."""
    pairs = equipped_pairs(session.get(StudentLoadout, student_id))
    if not pairs:
        return NEUTRAL_STACK
    items = get_items_by_keys(session, pairs)
    return combine_modifiers(ModifierRecord.from_item(item) for item in items.values())


def get_modifier_stack(engine, student_id: int) -> ModifierStack:
    with Session(engine) as session:
        require_student(session, student_id)
        return load_modifier_stack(session, student_id)
