"""
kudos.api.routes.admin — Admin endpoints (JWT-protected, admin role)
=====================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from kudos.api.deps import actor_of, get_current_admin, get_engine
from kudos.services import (
    catalog_service,
    gift_service,
    ledger_service,
    level_service,
    reconciliation_service,
    roulette_service,
    settings_service,
    student_service,
    unlock_service,
)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StudentCreate(BaseModel):
    name: str
    is_competition_team: bool = False


class TeamMembership(BaseModel):
    member: bool


class UnlockGrant(BaseModel):
    student_id: int
    item_type: str
    item_key: str


class CriterionUpdate(BaseModel):
    student_id: int
    criteria_key: str
    fulfilled: bool = True


class SettingUpdate(BaseModel):
    key: str
    value: Any
    category: str = "general"
    description: str | None = None


class LevelOverrides(BaseModel):
    # level → min lifetime points; empty reverts to the generated curve
    thresholds: dict[int, int] = Field(default_factory=dict)


class GiftGrant(BaseModel):
    student_id: int
    gift_item_id: int
    qty: int = 1
    expires_at: datetime | None = None


class SpinRecord(BaseModel):
    student_id: int
    points_delta: int
    segment_label: str | None = None
    prize_text: str | None = None
    wheel_name: str = "Prize Wheel"


# ---------------------------------------------------------------------------
# Students & aggregates
# ---------------------------------------------------------------------------
@router.post("/students")
def create_student(
    body: StudentCreate,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    student_id = student_service.create_student(
        engine, body.name, is_competition_team=body.is_competition_team,
    )
    return {"ok": True, "student_id": student_id}


@router.put("/students/{student_id}/competition-team")
def set_competition_team(
    student_id: int,
    body: TeamMembership,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    student_service.set_competition_team(engine, student_id, body.member)
    return {"ok": True, "student_id": student_id, "is_competition_team": body.member}


@router.post("/recompute/{student_id}")
def recompute(
    student_id: int,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return {"ok": True, "student": ledger_service.recompute(engine, student_id).to_dict()}


@router.post("/reconcile")
def reconcile(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return reconciliation_service.reconcile_aggregates(engine)


# ---------------------------------------------------------------------------
# Unlocks & criteria
# ---------------------------------------------------------------------------
@router.post("/unlocks/grant")
def grant_unlock(
    body: UnlockGrant,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    created = unlock_service.grant_unlock(
        engine, body.student_id, body.item_type, body.item_key, actor_of(admin),
    )
    return {"ok": True, "created": created}


@router.post("/criteria")
def set_criterion(
    body: CriterionUpdate,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    fulfilled = catalog_service.set_criterion(
        engine, body.student_id, body.criteria_key, body.fulfilled,
    )
    return {"ok": True, "fulfilled": fulfilled}


# ---------------------------------------------------------------------------
# Gifts & spins
# ---------------------------------------------------------------------------
@router.post("/gifts/grant")
def grant_gift(
    body: GiftGrant,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    gift_id = gift_service.grant_gift(
        engine,
        body.student_id,
        body.gift_item_id,
        body.qty,
        expires_at=body.expires_at,
        granted_by=actor_of(admin),
    )
    return {"ok": True, "student_gift_id": gift_id}


@router.post("/roulette/spins")
def record_spin(
    body: SpinRecord,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    spin_id = roulette_service.record_spin(
        engine,
        body.student_id,
        body.points_delta,
        segment_label=body.segment_label,
        prize_text=body.prize_text,
        wheel_name=body.wheel_name,
    )
    return {"ok": True, "spin_id": spin_id}


# ---------------------------------------------------------------------------
# Settings & level curve
# ---------------------------------------------------------------------------
@router.get("/settings")
def list_settings(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return {"settings": settings_service.get_all_settings(engine)}


@router.put("/settings")
def update_setting(
    body: SettingUpdate,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    settings_service.upsert_setting(
        engine,
        key=body.key,
        value=body.value,
        category=body.category,
        description=body.description,
    )
    return {"ok": True}


@router.put("/levels")
def replace_level_overrides(
    body: LevelOverrides,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    curve = level_service.replace_overrides(engine, body.thresholds)
    return {"ok": True, "overridden": curve.overridden, "levels": curve.as_list()}
