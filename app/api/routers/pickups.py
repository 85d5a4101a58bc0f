# app/api/routers/pickups.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.routers.lpn_refs import job_ref, line_ref
from app.db.session import get_session
from app.schemas.allocation import UnitFailureOut
from app.schemas.pickup import DispatchIn, JobStatusOut, PickupIn, PickupOut, PickupRecordOut
from app.services.pickup_service import JobStatusResult, PickupService

router = APIRouter(tags=["pickups"])

svc = PickupService()


def _job_out(r: JobStatusResult) -> JobStatusOut:
    return JobStatusOut(
        job=r.job_ref.label(),
        status=r.status,
        changed=r.changed,
        dispatched_units=r.dispatched_units,
    )


@router.post("/pickups/{kind}/{line_id}", response_model=PickupOut)
async def record_pickup(
    payload: PickupIn,
    kind: str = Path(..., description="outbound-line | container-line"),
    line_id: int = Path(..., ge=1),
    index: Optional[int] = Query(default=None, ge=0),
    session: AsyncSession = Depends(get_session),
) -> PickupOut:
    ref = line_ref(kind, line_id, index)
    try:
        outcome = await svc.record_pickup(
            session,
            ref,
            payload.lpn_numbers,
            buffer_qty=payload.buffer_qty,
            notes=payload.notes,
            picked_up_by=payload.picked_up_by,
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return PickupOut(
        record=PickupRecordOut.model_validate(outcome.record),
        failures=[UnitFailureOut.model_validate(f) for f in outcome.failures],
    )


@router.post("/jobs/{kind}/{job_id}/complete-pickup", response_model=JobStatusOut)
async def complete_pickup(
    kind: str = Path(..., description="outbound-job | container-detail"),
    job_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> JobStatusOut:
    ref = job_ref(kind, job_id)
    try:
        r = await svc.complete_pickup(session, ref)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return _job_out(r)


@router.post("/jobs/{kind}/{job_id}/dispatch", response_model=JobStatusOut)
async def dispatch(
    kind: str = Path(...),
    job_id: int = Path(..., ge=1),
    payload: Optional[DispatchIn] = Body(default=None),
    session: AsyncSession = Depends(get_session),
) -> JobStatusOut:
    ref = job_ref(kind, job_id)
    payload = payload or DispatchIn()
    try:
        r = await svc.dispatch(session, ref, vehicle_id=payload.vehicle_id, driver_id=payload.driver_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return _job_out(r)
