# app/api/routers/putaway.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.routers.lpn_refs import line_ref
from app.db.session import get_session
from app.schemas.putaway import (
    GenerateLpnsIn,
    GenerateLpnsOut,
    PutAwayIn,
    PutAwayOut,
    PutAwayUnitOut,
    RelocateIn,
)
from app.services.lpn_generator import LpnGenerator
from app.services.putaway_service import LocationPlan, PutAwayService

router = APIRouter(prefix="/put-away", tags=["put-away"])

svc = PutAwayService()


# 固定路径要在 /{kind}/{line_id} 之前注册
@router.post("/lpns/generate", response_model=GenerateLpnsOut)
async def generate_lpns(
    payload: GenerateLpnsIn,
    session: AsyncSession = Depends(get_session),
) -> GenerateLpnsOut:
    try:
        numbers = await LpnGenerator().generate(session, payload.count)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return GenerateLpnsOut(lpn_numbers=numbers)


@router.post("/lpns/{lpn_number}/relocate", response_model=PutAwayUnitOut)
async def relocate(
    payload: RelocateIn,
    lpn_number: str = Path(..., min_length=1),
    session: AsyncSession = Depends(get_session),
) -> PutAwayUnitOut:
    try:
        unit = await svc.relocate(session, lpn_number, payload.location)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return PutAwayUnitOut.model_validate(unit)


@router.delete("/lpns/{lpn_number}", response_model=PutAwayUnitOut)
async def soft_delete(
    lpn_number: str = Path(..., min_length=1),
    session: AsyncSession = Depends(get_session),
) -> PutAwayUnitOut:
    try:
        unit = await svc.soft_delete_unit(session, lpn_number)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return PutAwayUnitOut.model_validate(unit)


@router.post("/{kind}/{line_id}", response_model=PutAwayOut)
async def put_away(
    payload: PutAwayIn,
    kind: str = Path(..., description="inbound-line | container-line"),
    line_id: int = Path(..., ge=1),
    index: Optional[int] = Query(default=None, ge=0),
    session: AsyncSession = Depends(get_session),
) -> PutAwayOut:
    ref = line_ref(kind, line_id, index)
    if payload.locations:
        plan = LocationPlan.individual(payload.locations)
    else:
        plan = LocationPlan.bulk(payload.location or "")

    try:
        created = await svc.put_away(
            session,
            ref,
            payload.received_qty,
            plan,
            packing_factor=payload.packing_factor,
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return PutAwayOut(
        line=ref.label(),
        created_count=len(created),
        created=[PutAwayUnitOut.model_validate(u) for u in created],
    )
