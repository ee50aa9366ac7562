"""
tests/test_unlock_service.py — Purchase, Equip & Loadout
=========================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import add_item, add_student, equip_raw
from kudos.database.models import (
    ItemCriterionRequirement,
    LedgerEntry,
    StudentCustomUnlock,
    UnlockCriterion,
)
from kudos.engine.eligibility import PurchaseOutcome
from kudos.errors import (
    CatalogInconsistency,
    InsufficientLevel,
    InsufficientPoints,
    ItemDisabled,
    Locked,
    NotFound,
    RequiresEligibility,
    ValidationError,
)
from kudos.services.catalog_service import set_criterion
from kudos.services.ledger_service import get_student_snapshot, grant
from kudos.services.unlock_service import (
    equip,
    get_loadout,
    grant_unlock,
    list_unlock_states,
    purchase,
)


def _link_criterion(engine, item_type: str, item_key: str, criteria_key: str) -> None:
    with Session(engine) as session:
        if session.get(UnlockCriterion, criteria_key) is None:
            session.add(UnlockCriterion(key=criteria_key, label=criteria_key))
        session.add(ItemCriterionRequirement(
            item_type=item_type, item_key=item_key, criteria_key=criteria_key,
        ))
        session.commit()


def _debits(engine, student_id: int) -> list[LedgerEntry]:
    with Session(engine) as session:
        return list(session.scalars(
            select(LedgerEntry).where(
                LedgerEntry.student_id == student_id, LedgerEntry.points < 0,
            )
        ).all())


class TestPurchase:
    def test_debits_cost(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "gold_fox", unlock_points=30, name="Gold Fox")
        grant(db_engine, sid, 50)

        result = purchase(db_engine, sid, "avatar", "gold_fox")

        assert result.outcome is PurchaseOutcome.UNLOCKED
        assert result.points_spent == 30
        assert result.snapshot.points_balance == 20
        assert result.snapshot.lifetime_points == 50
        [debit] = _debits(db_engine, sid)
        assert debit.category == "unlock_avatar"
        assert debit.note == "Unlock avatar: Gold Fox (-30)"
        assert (debit.source_type, debit.source_id) == ("unlock_purchase", f"{sid}:avatar:gold_fox")
        assert debit.created_by is None

    def test_debit_records_staff_member(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "effect", "flame", unlock_points=20)
        grant(db_engine, sid, 50)

        purchase(db_engine, sid, "effect", "flame", created_by="coach-7")

        [debit] = _debits(db_engine, sid)
        assert debit.created_by == "coach-7"

    def test_repeat_purchase_no_second_debit(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "effect", "sparkle", unlock_points=30)
        grant(db_engine, sid, 50)
        purchase(db_engine, sid, "effect", "sparkle")

        again = purchase(db_engine, sid, "effect", "sparkle")

        assert again.outcome is PurchaseOutcome.ALREADY_UNLOCKED
        assert again.points_spent == 0
        assert again.to_dict()["already_unlocked"] is True
        assert again.snapshot.points_balance == 20
        assert len(_debits(db_engine, sid)) == 1

    def test_retry_repairs_missing_debit(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "owl", unlock_points=10)
        grant(db_engine, sid, 50)
        with Session(db_engine) as session:
            session.add(StudentCustomUnlock(
                student_id=sid, item_type="avatar", item_key="owl",
                source="purchase", points_spent=10,
            ))
            session.commit()

        result = purchase(db_engine, sid, "avatar", "owl")

        assert result.outcome is PurchaseOutcome.ALREADY_UNLOCKED
        assert result.points_spent == 10
        assert result.snapshot.points_balance == 40
        assert len(_debits(db_engine, sid)) == 1

    def test_insufficient_points_leaves_balance(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "gold_fox", unlock_points=50)
        grant(db_engine, sid, 40)

        with pytest.raises(InsufficientPoints):
            purchase(db_engine, sid, "avatar", "gold_fox")

        assert get_student_snapshot(db_engine, sid).points_balance == 40
        assert _debits(db_engine, sid) == []

    def test_balance_read_from_ledger(self, db_engine):
        """Stale cached aggregates do not let a student overspend."""
        from sqlalchemy import update

        from kudos.database.models import Student

        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "gold_fox", unlock_points=50)
        grant(db_engine, sid, 10)
        with Session(db_engine) as session:
            session.execute(update(Student).where(Student.id == sid).values(points_balance=500))
            session.commit()

        with pytest.raises(InsufficientPoints):
            purchase(db_engine, sid, "avatar", "gold_fox")

    def test_insufficient_level(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "card_plate", "marble", unlock_level=5)
        with pytest.raises(InsufficientLevel):
            purchase(db_engine, sid, "card_plate", "marble")

    def test_disabled_item(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "retired", enabled=False)
        with pytest.raises(ItemDisabled):
            purchase(db_engine, sid, "avatar", "retired")

    def test_unknown_item(self, db_engine):
        sid = add_student(db_engine)
        with pytest.raises(CatalogInconsistency):
            purchase(db_engine, sid, "avatar", "ghost")

    def test_unknown_item_type(self, db_engine):
        sid = add_student(db_engine)
        with pytest.raises(ValidationError):
            purchase(db_engine, sid, "hat", "ghost")

    def test_unknown_student(self, db_engine):
        add_item(db_engine, "avatar", "fox")
        with pytest.raises(NotFound):
            purchase(db_engine, 404, "avatar", "fox")

    def test_competition_only_avatar(self, db_engine):
        sid = add_student(db_engine)
        team = add_student(db_engine, "Grace", team=True)
        add_item(db_engine, "avatar", "champion", competition_only=True)

        with pytest.raises(RequiresEligibility):
            purchase(db_engine, sid, "avatar", "champion")
        assert purchase(db_engine, team, "avatar", "champion").outcome is PurchaseOutcome.UNLOCKED

    def test_criteria_bypass_level(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "corner_border", "camp", unlock_level=40, limited_event_only=True)
        _link_criterion(db_engine, "corner_border", "camp", "camp_2026")

        with pytest.raises(RequiresEligibility):
            purchase(db_engine, sid, "corner_border", "camp")

        set_criterion(db_engine, sid, "camp_2026", True)
        assert purchase(db_engine, sid, "corner_border", "camp").outcome is PurchaseOutcome.UNLOCKED


class TestGrantUnlock:
    def test_grant_is_free_and_idempotent(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "effect", "aurora", unlock_points=500, unlock_level=30)

        assert grant_unlock(db_engine, sid, "effect", "aurora", granted_by="coach-1") is True
        assert grant_unlock(db_engine, sid, "effect", "aurora") is False
        assert _debits(db_engine, sid) == []

        states = {s["key"]: s["state"] for s in list_unlock_states(db_engine, sid, "effect")}
        assert states["aurora"] == "unlocked_by_purchase"

    def test_unknown_criterion(self, db_engine):
        sid = add_student(db_engine)
        with pytest.raises(NotFound):
            set_criterion(db_engine, sid, "nope", True)


class TestEquip:
    def test_locked_item_rejected(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "effect", "flame", unlock_points=20)
        with pytest.raises(Locked):
            equip(db_engine, sid, "effect", "flame")

    def test_equip_and_clear(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "fox")

        loadout = equip(db_engine, sid, "avatar", "fox")
        assert loadout["avatar"] == "fox"
        assert loadout["avatar_set_at"] is not None

        assert equip(db_engine, sid, "avatar", None)["avatar"] is None

    def test_disabled_item_rejected(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "old", enabled=False)
        with pytest.raises(ItemDisabled):
            equip(db_engine, sid, "avatar", "old")


class TestGetLoadout:
    def test_fallback_avatar_assigned(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "cat")
        add_item(db_engine, "avatar", "bear", is_secondary=True)

        loadout = get_loadout(db_engine, sid)

        assert loadout["avatar"] == "cat"
        assert loadout["changed"] == ["avatar"]
        assert get_loadout(db_engine, sid)["changed"] == []

    def test_ineligible_slots_repaired(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "cat")
        add_item(db_engine, "avatar", "dragon", unlock_level=20)
        add_item(db_engine, "effect", "gone", enabled=False)
        add_item(db_engine, "card_plate", "plain")
        equip_raw(db_engine, sid, avatar_key="dragon", effect_key="gone", card_plate_key="plain")

        loadout = get_loadout(db_engine, sid)

        assert loadout["avatar"] == "cat"
        assert loadout["effect"] is None
        assert loadout["card_plate"] == "plain"
        assert sorted(loadout["changed"]) == ["avatar", "effect"]

    def test_empty_catalog_leaves_slot_empty(self, db_engine):
        sid = add_student(db_engine)
        loadout = get_loadout(db_engine, sid)
        assert loadout["avatar"] is None
        assert loadout["changed"] == []


class TestListUnlockStates:
    def test_states_and_missing_criteria(self, db_engine):
        sid = add_student(db_engine)
        add_item(db_engine, "avatar", "fox")
        add_item(db_engine, "avatar", "tiger", unlock_level=10)
        add_item(db_engine, "avatar", "camp", limited_event_only=True)
        _link_criterion(db_engine, "avatar", "camp", "camp_2026")

        rows = {r["key"]: r for r in list_unlock_states(db_engine, sid)}

        assert rows["fox"]["state"] == "unlocked_default"
        assert rows["tiger"]["state"] == "locked"
        assert rows["camp"]["state"] == "locked"
        assert rows["camp"]["missing_criteria"] == ["camp_2026"]
