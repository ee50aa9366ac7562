"""
kudos.api.routes.students — Read endpoints for staff screens
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from kudos.api.deps import get_config, get_current_staff, get_engine
from kudos.config import KudosConfig
from kudos.services import ledger_service, level_service, modifier_service, unlock_service

router = APIRouter(tags=["students"])


@router.get("/info")
def info(config: KudosConfig = Depends(get_config)):
    return {
        "program_name": config.program_name,
        "timezone": config.timezone,
    }


@router.get("/levels")
def levels(
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    curve = level_service.get_curve(engine)
    return {"overridden": curve.overridden, "levels": curve.as_list()}


@router.get("/students/{student_id}")
def get_student(
    student_id: int,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    return ledger_service.get_student_snapshot(engine, student_id).to_dict()


@router.get("/students/{student_id}/ledger")
def get_ledger(
    student_id: int,
    limit: int = Query(50, ge=1, le=500),
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    return {"entries": ledger_service.list_ledger(engine, student_id, limit)}


@router.get("/students/{student_id}/unlocks")
def get_unlocks(
    student_id: int,
    item_type: str | None = Query(None),
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    return {"items": unlock_service.list_unlock_states(engine, student_id, item_type)}


@router.get("/students/{student_id}/modifiers")
def get_modifiers(
    student_id: int,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    return modifier_service.get_modifier_stack(engine, student_id).to_dict()


@router.get("/students/{student_id}/loadout")
def get_loadout(
    student_id: int,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    return unlock_service.get_loadout(engine, student_id)
