"""
kudos.api.routes.awards — Point-granting endpoints
===================================================

Every handler is ``async`` and reaches the synchronous services through
:func:`kudos.database.engine.run_db`.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from kudos.api.deps import actor_of, get_current_staff, get_engine
from kudos.database.engine import run_db
from kudos.services import (
    challenge_service,
    daily_service,
    gift_service,
    ledger_service,
    roulette_service,
)

router = APIRouter(tags=["awards"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class GrantRequest(BaseModel):
    student_id: int
    points: int
    category: str = "manual"
    note: str = ""
    source_type: str | None = None
    source_id: str | None = None


class ChallengeCompleteRequest(BaseModel):
    student_id: int
    challenge_id: int
    completed: bool = True


class SpinConfirmRequest(BaseModel):
    spin_id: int


class GiftOpenRequest(BaseModel):
    student_id: int
    student_gift_id: int


class DailyRedeemRequest(BaseModel):
    student_id: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("/ledger/grant")
async def grant(
    body: GrantRequest,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    result = await run_db(
        ledger_service.grant,
        engine,
        body.student_id,
        body.points,
        body.category,
        body.note,
        body.source_type,
        body.source_id,
        created_by=actor_of(staff),
    )
    return result.to_dict()


@router.post("/challenges/complete")
async def complete_challenge(
    body: ChallengeCompleteRequest,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    result = await run_db(
        challenge_service.complete_challenge,
        engine,
        body.student_id,
        body.challenge_id,
        body.completed,
        created_by=actor_of(staff),
    )
    return result.to_dict()


@router.post("/roulette/confirm")
async def confirm_spin(
    body: SpinConfirmRequest,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    result = await run_db(roulette_service.confirm_spin, engine, body.spin_id, actor_of(staff))
    return result.to_dict()


@router.post("/gifts/open")
async def open_gift(
    body: GiftOpenRequest,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    result = await run_db(
        gift_service.open_gift, engine, body.student_id, body.student_gift_id, actor_of(staff),
    )
    return result.to_dict()


@router.post("/avatar/daily-redeem")
async def daily_redeem(
    body: DailyRedeemRequest,
    engine: Engine = Depends(get_engine),
    staff: dict = Depends(get_current_staff),
):
    result = await run_db(daily_service.redeem_daily_points, engine, body.student_id)
    return result.to_dict()
