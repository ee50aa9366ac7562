"""
kudos.api.routes.unlocks — Purchase & equip endpoints
======================================================

Handlers are ``async`` and reach the unlock service through
:func:`kudos.database.engine.run_db`; the purchase debit records the
calling staff member as ``created_by``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from kudos.api.deps import actor_of, get_current_staff, get_engine
from kudos.database.engine import run_db
from kudos.services import unlock_service

router = APIRouter(tags=["unlocks"])


class PurchaseRequest(BaseModel):
    student_id: int
    item_type: str
    item_key: str


class EquipRequest(BaseModel):
    student_id: int
    item_type: str
    item_key: str | None = None


@router.post("/unlocks/purchase")
async def purchase(
    body: PurchaseRequest,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    result = await run_db(
        unlock_service.purchase,
        engine,
        body.student_id,
        body.item_type,
        body.item_key,
        created_by=actor_of(staff),
    )
    return result.to_dict()


@router.post("/loadout/equip")
async def equip(
    body: EquipRequest,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    loadout = await run_db(
        unlock_service.equip, engine, body.student_id, body.item_type, body.item_key,
    )
    return {"ok": True, "loadout": loadout}
