# app/api/routers/allocation.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.routers.lpn_refs import line_ref
from app.db.session import get_session
from app.schemas.allocation import (
    AllocateIn,
    AllocateOut,
    AvailableUnitOut,
    ClaimedUnitOut,
    ReleaseIn,
    ReleaseOut,
    UnitFailureOut,
)
from app.services.allocation_service import AllocationService

router = APIRouter(prefix="/allocations", tags=["allocations"])

svc = AllocationService()


@router.post("/{kind}/{line_id}", response_model=AllocateOut)
async def allocate(
    payload: AllocateIn,
    kind: str = Path(..., description="outbound-line | container-line"),
    line_id: int = Path(..., ge=1),
    index: Optional[int] = Query(default=None, ge=0, description="container-line 的行序号"),
    session: AsyncSession = Depends(get_session),
) -> AllocateOut:
    ref = line_ref(kind, line_id, index)
    try:
        r = await svc.allocate(
            session,
            ref,
            payload.mode,
            lpn_numbers=payload.lpn_numbers,
            quantity=payload.quantity,
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return AllocateOut(
        line=ref.label(),
        mode=r.mode,
        claimed=[ClaimedUnitOut.model_validate(u) for u in r.claimed],
        failures=[UnitFailureOut.model_validate(f) for f in r.failures],
        warnings=r.warnings,
        available_qty=r.available_qty,
        target_qty=r.target_qty,
        claimed_qty=r.claimed_qty,
        over_provision_qty=r.over_provision_qty,
        allocated_qty=r.allocated_qty,
    )


@router.get("/{kind}/{line_id}/available-stock", response_model=List[AvailableUnitOut])
async def available_stock(
    kind: str = Path(...),
    line_id: int = Path(..., ge=1),
    index: Optional[int] = Query(default=None, ge=0),
    session: AsyncSession = Depends(get_session),
) -> List[AvailableUnitOut]:
    ref = line_ref(kind, line_id, index)
    units = await svc.available_stock(session, ref)
    return [AvailableUnitOut.model_validate(u) for u in units]


@router.post("/{kind}/{line_id}/release", response_model=ReleaseOut)
async def release(
    payload: ReleaseIn,
    kind: str = Path(...),
    line_id: int = Path(..., ge=1),
    index: Optional[int] = Query(default=None, ge=0),
    session: AsyncSession = Depends(get_session),
) -> ReleaseOut:
    ref = line_ref(kind, line_id, index)
    try:
        r = await svc.release(session, ref, payload.lpn_numbers)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return ReleaseOut(
        line=ref.label(),
        released=r.released,
        failures=[UnitFailureOut.model_validate(f) for f in r.failures],
        allocated_qty=r.allocated_qty,
    )
