# app/services/pickup_service.py
"""
拣货 / 发运对账。

record_pickup：
  - 每个 LPN 必须被本行认领且仍是 allocated；其余逐个记失败并跳过
  - 一个有效 LPN 都没有 → NothingToPickError（带逐个失败明细）
  - LPN 走条件 UPDATE allocated → picked；之后锁行，按认领关系重算 picked_qty（已拣 + 已发运）
  - 追加一条 pickup_stock（final = picked + buffer）
  - 出库作业 / 出口柜：全部行都有拣货记录 → picked，否则 partially_picked

complete_pickup：幂等闸门，作业下每一行至少一条拣货记录 → ready_to_dispatch
dispatch：ready_to_dispatch → dispatched，同时把本作业已拣 LPN 逐个 CAS 成 dispatched
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.metrics import PICKUPS, UNIT_FAILURES, UNITS_DISPATCHED
from app.models.container import ContainerBooking, ContainerDetail, ContainerStockAllocation
from app.models.enums import (
    AllocationStatus,
    BookingDirection,
    ContainerStatus,
    DemandKind,
    JobKind,
    OutboundJobStatus,
    PickupStatus,
)
from app.models.outbound import OutboundJob, OutboundProductLine
from app.models.pickup_stock import PickupStock
from app.models.put_away_stock import PutAwayStock
from app.services.allocation_service import claim_filter, is_claimed_by, sync_line_totals
from app.services.errors import (
    UNIT_CONFLICT,
    UNIT_NOT_FOUND,
    InvalidStateError,
    NothingToPickError,
    NotFoundError,
    UnitFailure,
)
from app.services.provenance import DemandLine, LineRef, ProvenanceResolver
from app.services.record_store import RecordStore

log = logging.getLogger("lpnwms.pickup")

# 仍可推进拣货状态的作业状态，按单据维度分开
_PICKABLE = {
    JobKind.OUTBOUND_JOB: {
        OutboundJobStatus.DRAFT.value,
        OutboundJobStatus.ALLOCATED.value,
        OutboundJobStatus.PARTIALLY_PICKED.value,
        OutboundJobStatus.PICKED.value,
    },
    JobKind.CONTAINER_DETAIL: {
        ContainerStatus.BOOKED.value,
        ContainerStatus.ALLOCATED.value,
        ContainerStatus.PARTIALLY_PICKED.value,
        ContainerStatus.PICKED.value,
    },
}


def _statuses(kind: JobKind):
    return OutboundJobStatus if kind == JobKind.OUTBOUND_JOB else ContainerStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JobRef:
    kind: JobKind
    id: int

    def label(self) -> str:
        return f"{self.kind.value}#{self.id}"


@dataclass
class PickupOutcome:
    record: PickupStock
    failures: List[UnitFailure] = field(default_factory=list)


@dataclass
class JobStatusResult:
    job_ref: JobRef
    status: str
    changed: bool
    dispatched_units: int = 0


def _demand_fields(line: DemandLine) -> Dict[str, Any]:
    if line.ref.kind == DemandKind.OUTBOUND_LINE:
        return {
            "demand_kind": line.ref.kind.value,
            "outbound_product_line_id": line.ref.id,
            "outbound_job_id": line.job_id,
        }
    return {
        "demand_kind": line.ref.kind.value,
        "container_stock_allocation_id": line.ref.id,
        "container_line_index": line.ref.index,
        "container_detail_id": line.job_id,
    }


def _pickup_filter(ref: LineRef) -> Dict[str, Any]:
    if ref.kind == DemandKind.OUTBOUND_LINE:
        return {"demand_kind": ref.kind.value, "outbound_product_line_id": ref.id}
    return {
        "demand_kind": ref.kind.value,
        "container_stock_allocation_id": ref.id,
        "container_line_index": ref.index,
    }


class PickupService:
    # ---------------------------------------------------------------
    # 单行拣货
    # ---------------------------------------------------------------
    async def record_pickup(
        self,
        session: AsyncSession,
        line_ref: LineRef,
        lpn_numbers: Sequence[str],
        *,
        buffer_qty: int = 0,
        notes: Optional[str] = None,
        picked_up_by: Optional[str] = None,
    ) -> PickupOutcome:
        if int(buffer_qty) < 0:
            raise ValueError("buffer_qty must be >= 0")

        resolver = ProvenanceResolver(session)
        line = await resolver.load_demand_line(line_ref)
        if line.is_supply:
            raise InvalidStateError(f"{line_ref.label()} is a supply line and cannot be picked")

        store = RecordStore(session)
        failures: List[UnitFailure] = []
        picked: List[PutAwayStock] = []
        seen: set = set()

        for lpn in lpn_numbers:
            if lpn in seen:
                continue
            seen.add(lpn)

            found = await store.find("put-away-stock", {"lpn_number": lpn, "is_deleted": False}, limit=1)
            if not found:
                failures.append(UnitFailure(lpn, UNIT_NOT_FOUND, "lpn not found"))
                continue
            unit = found[0]
            if not is_claimed_by(unit, line_ref):
                failures.append(UnitFailure(lpn, UNIT_CONFLICT, "not allocated to this line"))
                continue
            if unit.allocation_status != AllocationStatus.ALLOCATED.value:
                failures.append(UnitFailure(lpn, UNIT_CONFLICT, f"already {unit.allocation_status}"))
                continue

            expected = {"allocation_status": AllocationStatus.ALLOCATED.value}
            expected.update(claim_filter(line_ref))
            ok = await store.compare_and_set(
                "put-away-stock",
                unit.id,
                expected,
                {"allocation_status": AllocationStatus.PICKED.value, "picked_at": _now()},
            )
            if not ok:
                failures.append(UnitFailure(lpn, UNIT_CONFLICT, "picked concurrently"))
                continue
            picked.append(unit)

        for f in failures:
            UNIT_FAILURES.labels("pickup", f.code).inc()
            log.warning("pickup %s: %s %s (%s)", line_ref.label(), f.lpn_number, f.code, f.reason)

        if not picked:
            raise NothingToPickError(
                f"{line_ref.label()}: none of {len(seen)} lpn(s) can be picked",
                details=[f.to_dict() for f in failures],
            )

        picked_qty = sum(int(u.hu_qty) for u in picked)
        await sync_line_totals(resolver, line)

        data: Dict[str, Any] = {
            "tenant_id": line.tenant_id,
            "warehouse_id": line.warehouse_id,
            "sku_id": line.sku_id,
            "picked_lpns": [
                {"lpn_id": u.id, "lpn_number": u.lpn_number, "hu_qty": int(u.hu_qty), "location": u.location}
                for u in picked
            ],
            "picked_up_qty": picked_qty,
            "buffer_qty": int(buffer_qty),
            "final_picked_up_qty": picked_qty + int(buffer_qty),
            "pickup_status": PickupStatus.COMPLETED.value,
            "picked_up_by": picked_up_by,
            "notes": notes,
        }
        data.update(_demand_fields(line))
        record = await store.create("pickup-stock", data)
        PICKUPS.labels(line_ref.kind.value).inc()

        await self._advance_pick_status(session, line)

        log.info(
            "pickup %s lpns=%d picked=%d buffer=%d final=%d failures=%d",
            line_ref.label(),
            len(picked),
            picked_qty,
            int(buffer_qty),
            record.final_picked_up_qty,
            len(failures),
        )
        return PickupOutcome(record=record, failures=failures)

    # ---------------------------------------------------------------
    # 作业维度
    # ---------------------------------------------------------------
    async def _job(self, session: AsyncSession, job_ref: JobRef) -> Union[OutboundJob, ContainerDetail]:
        if job_ref.kind == JobKind.OUTBOUND_JOB:
            job = await session.get(OutboundJob, job_ref.id)
            if job is None:
                raise NotFoundError(f"outbound job #{job_ref.id} not found")
            return job
        if job_ref.kind == JobKind.CONTAINER_DETAIL:
            detail = await session.get(ContainerDetail, job_ref.id)
            if detail is None:
                raise NotFoundError(f"container detail #{job_ref.id} not found")
            booking = await session.get(ContainerBooking, detail.booking_id)
            if booking is None or booking.direction != BookingDirection.EXPORT:
                raise InvalidStateError(f"container detail #{job_ref.id} belongs to an import booking")
            return detail
        raise InvalidStateError(f"unknown job kind {job_ref.kind!r}")

    async def job_lines(self, session: AsyncSession, job_ref: JobRef) -> List[LineRef]:
        if job_ref.kind == JobKind.OUTBOUND_JOB:
            ids = (
                await session.execute(
                    select(OutboundProductLine.id)
                    .where(OutboundProductLine.outbound_job_id == job_ref.id)
                    .order_by(OutboundProductLine.id)
                )
            ).scalars().all()
            return [LineRef.outbound(i) for i in ids]

        allocs = (
            await session.execute(
                select(ContainerStockAllocation)
                .where(ContainerStockAllocation.container_detail_id == job_ref.id)
                .order_by(ContainerStockAllocation.id)
            )
        ).scalars().all()
        return [LineRef.container(a.id, i) for a in allocs for i in range(len(a.product_lines or []))]

    async def lines_without_pickup(self, session: AsyncSession, job_ref: JobRef) -> List[LineRef]:
        store = RecordStore(session)
        missing: List[LineRef] = []
        for ref in await self.job_lines(session, job_ref):
            if not await store.find("pickup-stock", _pickup_filter(ref), limit=1):
                missing.append(ref)
        return missing

    async def _advance_pick_status(self, session: AsyncSession, line: DemandLine) -> None:
        if line.ref.kind == DemandKind.OUTBOUND_LINE:
            job_ref = JobRef(JobKind.OUTBOUND_JOB, line.job_id)
        else:
            job_ref = JobRef(JobKind.CONTAINER_DETAIL, line.job_id)
        job = await self._job(session, job_ref)
        if job.status not in _PICKABLE[job_ref.kind]:
            return
        st = _statuses(job_ref.kind)
        missing = await self.lines_without_pickup(session, job_ref)
        new_status = st.PARTIALLY_PICKED.value if missing else st.PICKED.value
        if job.status != new_status:
            log.info("%s status %s -> %s", job_ref.label(), job.status, new_status)
            job.status = new_status
            await session.flush()

    async def complete_pickup(self, session: AsyncSession, job_ref: JobRef) -> JobStatusResult:
        job = await self._job(session, job_ref)
        st = _statuses(job_ref.kind)
        if job.status in (st.READY_TO_DISPATCH.value, st.DISPATCHED.value):
            return JobStatusResult(job_ref=job_ref, status=job.status, changed=False)

        lines = await self.job_lines(session, job_ref)
        if not lines:
            raise InvalidStateError(f"{job_ref.label()} has no demand lines")
        missing = await self.lines_without_pickup(session, job_ref)
        if missing:
            raise InvalidStateError(
                f"{job_ref.label()}: {len(missing)} line(s) have no pickup record",
                details=[{"type": "line", "line": ref.label()} for ref in missing],
            )

        old = job.status
        job.status = st.READY_TO_DISPATCH.value
        await session.flush()
        log.info("%s complete pickup: %s -> %s", job_ref.label(), old, job.status)
        return JobStatusResult(job_ref=job_ref, status=job.status, changed=True)

    async def dispatch(
        self,
        session: AsyncSession,
        job_ref: JobRef,
        *,
        vehicle_id: Optional[str] = None,
        driver_id: Optional[str] = None,
    ) -> JobStatusResult:
        job = await self._job(session, job_ref)
        st = _statuses(job_ref.kind)
        if job.status == st.DISPATCHED.value:
            return JobStatusResult(job_ref=job_ref, status=job.status, changed=False)
        if job.status != st.READY_TO_DISPATCH.value:
            raise InvalidStateError(f"{job_ref.label()} is {job.status}; complete pickup first")

        now = _now()
        if job_ref.kind == JobKind.OUTBOUND_JOB:
            owner = [
                PutAwayStock.claim_kind == DemandKind.OUTBOUND_LINE.value,
                PutAwayStock.outbound_job_id == job.id,
            ]
        else:
            owner = [
                PutAwayStock.claim_kind == DemandKind.CONTAINER_LINE.value,
                PutAwayStock.claim_container_detail_id == job.id,
            ]
        units = (
            await session.execute(
                select(PutAwayStock).where(
                    *owner,
                    PutAwayStock.allocation_status == AllocationStatus.PICKED.value,
                    PutAwayStock.is_deleted.is_(False),
                )
            )
        ).scalars().all()
        store = RecordStore(session)
        n = 0
        for unit in units:
            if await store.compare_and_set(
                "put-away-stock",
                unit.id,
                {"allocation_status": AllocationStatus.PICKED.value},
                {"allocation_status": AllocationStatus.DISPATCHED.value, "dispatched_at": now},
            ):
                n += 1

        job.status = st.DISPATCHED.value
        job.dispatched_at = now
        if vehicle_id is not None:
            job.vehicle_id = vehicle_id
        if driver_id is not None:
            job.driver_id = driver_id
        await session.flush()

        UNITS_DISPATCHED.labels(job_ref.kind.value).inc(n)
        log.info("%s dispatched (vehicle=%s driver=%s units=%d)", job_ref.label(), vehicle_id, driver_id, n)
        return JobStatusResult(job_ref=job_ref, status=job.status, changed=True, dispatched_units=n)
