# app/services/allocation_service.py
"""
分配引擎：把可用 LPN 认领到需求行（出库行 / 出口柜行）。

核心规则：
------------------------------------------
• 认领 = 条件 UPDATE（WHERE allocation_status='available'），并发下同一 LPN 只有一方成功
• manual：逐个校验 存在 → SKU/批次匹配 → 未被本行认领 → 未被他行认领；
  单个失败只记入 failures，其余照常认领
• auto：target = min(可用量, 剩余需求)；剩余需求为 0 时 target = 可用量（允许超配）
  候选按 lpn_number 升序（即发号顺序 = 先入先出），整托认领直到累计 ≥ target
• allocated_qty / picked_qty 每次调用后锁行、按认领关系重算，不做增量累加
• 超配只给 warning，不报错
------------------------------------------

服务不 commit，事务边界由调用方控制。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.metrics import UNIT_FAILURES, UNITS_CLAIMED
from app.models.container import ContainerDetail
from app.models.enums import AllocationMode, AllocationStatus, ContainerStatus, DemandKind, OutboundJobStatus
from app.models.outbound import OutboundJob
from app.models.put_away_stock import PutAwayStock
from app.services.errors import (
    LINE_INSUFFICIENT_SUPPLY,
    UNIT_CONFLICT,
    UNIT_MISMATCH,
    UNIT_NOT_FOUND,
    InvalidStateError,
    UnitFailure,
)
from app.services.provenance import DemandLine, LineRef, ProvenanceResolver
from app.services.record_store import RecordStore

log = logging.getLogger("lpnwms.allocation")

# 仍算作"被该行认领"的状态：拣货 / 发运后认领关系保留
CLAIMED_STATUSES = (
    AllocationStatus.ALLOCATED.value,
    AllocationStatus.PICKED.value,
    AllocationStatus.DISPATCHED.value,
)
PICKED_STATUSES = (
    AllocationStatus.PICKED.value,
    AllocationStatus.DISPATCHED.value,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# 认领引用 ↔ put_away_stock.claim_* 列
# ---------------------------------------------------------------------------
def claim_filter(ref: LineRef) -> Dict[str, Any]:
    """RecordStore.find / compare_and_set 用的等值条件：被 ref 认领"""
    if ref.kind == DemandKind.OUTBOUND_LINE:
        return {"claim_kind": ref.kind.value, "outbound_product_line_id": ref.id}
    if ref.kind == DemandKind.CONTAINER_LINE:
        return {
            "claim_kind": ref.kind.value,
            "claim_container_allocation_id": ref.id,
            "claim_container_line_index": ref.index,
        }
    raise InvalidStateError(f"{ref.label()} cannot claim stock")


def claim_patch(line: DemandLine) -> Dict[str, Any]:
    patch: Dict[str, Any] = {
        "allocation_status": AllocationStatus.ALLOCATED.value,
        "allocated_at": _now(),
    }
    patch.update(claim_filter(line.ref))
    if line.ref.kind == DemandKind.OUTBOUND_LINE:
        patch["outbound_job_id"] = line.job_id
    else:
        patch["claim_container_detail_id"] = line.job_id
    return patch


UNCLAIM_PATCH: Dict[str, Any] = {
    "allocation_status": AllocationStatus.AVAILABLE.value,
    "claim_kind": None,
    "outbound_product_line_id": None,
    "outbound_job_id": None,
    "claim_container_allocation_id": None,
    "claim_container_line_index": None,
    "claim_container_detail_id": None,
    "allocated_at": None,
}


def is_claimed_by(unit: PutAwayStock, ref: LineRef) -> bool:
    if unit.claim_kind != ref.kind.value:
        return False
    if ref.kind == DemandKind.OUTBOUND_LINE:
        return unit.outbound_product_line_id == ref.id
    return unit.claim_container_allocation_id == ref.id and unit.claim_container_line_index == ref.index


def batch_matches(line_batch: Optional[str], unit_batch: Optional[str]) -> bool:
    """行上没写批次 → 任意批次都可；写了则必须一致（忽略首尾空白）"""
    if line_batch is None:
        return True
    return (unit_batch or "").strip() == line_batch.strip()


async def _claimed_sum(session: AsyncSession, ref: LineRef, statuses: Sequence[str]) -> int:
    crit = [getattr(PutAwayStock, k) == v for k, v in claim_filter(ref).items()]
    stmt = select(func.coalesce(func.sum(PutAwayStock.hu_qty), 0)).where(
        *crit,
        PutAwayStock.is_deleted.is_(False),
        PutAwayStock.allocation_status.in_(statuses),
    )
    return int((await session.execute(stmt)).scalar_one())


async def recompute_allocated_qty(session: AsyncSession, ref: LineRef) -> int:
    return await _claimed_sum(session, ref, CLAIMED_STATUSES)


async def recompute_picked_qty(session: AsyncSession, ref: LineRef) -> int:
    return await _claimed_sum(session, ref, PICKED_STATUSES)


async def sync_line_totals(resolver: ProvenanceResolver, line: DemandLine) -> None:
    """
    锁住需求行后按认领关系重算 allocated_qty / picked_qty 并写回。
    两个累计字段都不做增量累加，并发的分配 / 拣货各自写回的都是全量。
    """
    await resolver.lock_line(line.ref)
    line.allocated_qty = await recompute_allocated_qty(resolver.session, line.ref)
    line.picked_qty = await recompute_picked_qty(resolver.session, line.ref)
    await resolver.save_demand_line(line)


# ---------------------------------------------------------------------------
# 结果类型
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ClaimedUnit:
    lpn_number: str
    hu_qty: int
    location: str


@dataclass(frozen=True)
class AvailableUnit:
    unit_id: int
    lpn_number: str
    hu_qty: int
    location: str
    batch_number: Optional[str]
    expiry_date: Optional[date]


@dataclass
class AllocationResult:
    line_ref: LineRef
    mode: AllocationMode
    claimed: List[ClaimedUnit] = field(default_factory=list)
    failures: List[UnitFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    available_qty: int = 0
    target_qty: int = 0
    remaining_before: int = 0
    allocated_qty: int = 0

    @property
    def claimed_qty(self) -> int:
        return sum(u.hu_qty for u in self.claimed)

    @property
    def over_provision_qty(self) -> int:
        return max(0, self.claimed_qty - self.remaining_before)


@dataclass
class ReleaseResult:
    line_ref: LineRef
    released: List[str] = field(default_factory=list)
    failures: List[UnitFailure] = field(default_factory=list)
    allocated_qty: int = 0


# ---------------------------------------------------------------------------
# 服务
# ---------------------------------------------------------------------------
class AllocationService:
    async def _load_demand(self, resolver: ProvenanceResolver, ref: LineRef) -> DemandLine:
        line = await resolver.load_demand_line(ref)
        if line.is_supply:
            raise InvalidStateError(f"{ref.label()} is a supply line and cannot be allocated")
        return line

    async def _candidates(
        self,
        session: AsyncSession,
        resolver: ProvenanceResolver,
        line: DemandLine,
    ) -> List[AvailableUnit]:
        rows = (
            await session.execute(
                select(PutAwayStock)
                .where(
                    PutAwayStock.tenant_id == line.tenant_id,
                    PutAwayStock.warehouse_id == line.warehouse_id,
                    PutAwayStock.sku_id == line.sku_id,
                    PutAwayStock.allocation_status == AllocationStatus.AVAILABLE.value,
                    PutAwayStock.is_deleted.is_(False),
                )
                .order_by(PutAwayStock.lpn_number.asc())
            )
        ).scalars().all()

        out: List[AvailableUnit] = []
        for unit in rows:
            meta = await resolver.resolve(unit)
            if not batch_matches(line.batch_number, meta.batch_number):
                continue
            out.append(
                AvailableUnit(
                    unit_id=unit.id,
                    lpn_number=unit.lpn_number,
                    hu_qty=int(unit.hu_qty),
                    location=unit.location,
                    batch_number=meta.batch_number,
                    expiry_date=meta.expiry_date,
                )
            )
        return out

    async def available_stock(self, session: AsyncSession, line_ref: LineRef) -> List[AvailableUnit]:
        resolver = ProvenanceResolver(session)
        line = await self._load_demand(resolver, line_ref)
        return await self._candidates(session, resolver, line)

    async def allocate(
        self,
        session: AsyncSession,
        line_ref: LineRef,
        mode: AllocationMode,
        *,
        lpn_numbers: Optional[Sequence[str]] = None,
        quantity: Optional[int] = None,
    ) -> AllocationResult:
        resolver = ProvenanceResolver(session)
        line = await self._load_demand(resolver, line_ref)

        # 以认领关系为准重算一次，避免行上的累计值漂移
        current = await recompute_allocated_qty(session, line_ref)
        remaining = max(0, line.expected_qty - current)

        result = AllocationResult(line_ref=line_ref, mode=AllocationMode(mode), remaining_before=remaining)

        if result.mode == AllocationMode.MANUAL:
            await self._allocate_manual(session, resolver, line, list(lpn_numbers or []), result)
        else:
            await self._allocate_auto(session, resolver, line, quantity, result)

        await sync_line_totals(resolver, line)
        result.allocated_qty = line.allocated_qty

        if result.claimed:
            await self._mark_job_allocated(session, line)

        if result.claimed and remaining == 0:
            result.warnings.append(
                f"line already fully allocated; over-provisioned by {result.claimed_qty}"
            )
        elif result.over_provision_qty > 0:
            result.warnings.append(f"over-provisioned by {result.over_provision_qty}")

        if result.claimed:
            UNITS_CLAIMED.labels(line_ref.kind.value, result.mode.value).inc(len(result.claimed))
        for f in result.failures:
            UNIT_FAILURES.labels("allocate", f.code).inc()
        for w in result.warnings:
            log.warning("allocate %s: %s", line_ref.label(), w)
        log.info(
            "allocate %s mode=%s claimed=%d qty=%d failures=%d allocated_qty=%d",
            line_ref.label(),
            result.mode.value,
            len(result.claimed),
            result.claimed_qty,
            len(result.failures),
            result.allocated_qty,
        )
        return result

    async def _claim(self, store: RecordStore, unit_id: int, line: DemandLine) -> bool:
        return await store.compare_and_set(
            "put-away-stock",
            unit_id,
            {"allocation_status": AllocationStatus.AVAILABLE.value, "is_deleted": False},
            claim_patch(line),
        )

    async def _allocate_manual(
        self,
        session: AsyncSession,
        resolver: ProvenanceResolver,
        line: DemandLine,
        lpn_numbers: List[str],
        result: AllocationResult,
    ) -> None:
        store = RecordStore(session)

        def fail(lpn: str, code: str, reason: str) -> None:
            result.failures.append(UnitFailure(lpn, code, reason))
            log.warning("allocate %s: %s %s (%s)", line.ref.label(), lpn, code, reason)

        for lpn in lpn_numbers:
            found = await store.find(
                "put-away-stock",
                {
                    "lpn_number": lpn,
                    "tenant_id": line.tenant_id,
                    "warehouse_id": line.warehouse_id,
                    "is_deleted": False,
                },
                limit=1,
            )
            if not found:
                fail(lpn, UNIT_NOT_FOUND, "lpn not found")
                continue
            unit = found[0]

            meta = await resolver.resolve(unit)
            if unit.sku_id != line.sku_id or not batch_matches(line.batch_number, meta.batch_number):
                fail(lpn, UNIT_MISMATCH, f"lpn holds {meta.sku_code}/{meta.batch_number or '-'}")
                continue

            if unit.allocation_status != AllocationStatus.AVAILABLE.value:
                if is_claimed_by(unit, line.ref):
                    fail(lpn, UNIT_CONFLICT, "already allocated to this line")
                else:
                    fail(lpn, UNIT_CONFLICT, f"already {unit.allocation_status} elsewhere")
                continue

            if not await self._claim(store, unit.id, line):
                fail(lpn, UNIT_CONFLICT, "claimed concurrently by another line")
                continue

            result.claimed.append(ClaimedUnit(unit.lpn_number, int(unit.hu_qty), unit.location))

    async def _allocate_auto(
        self,
        session: AsyncSession,
        resolver: ProvenanceResolver,
        line: DemandLine,
        quantity: Optional[int],
        result: AllocationResult,
    ) -> None:
        store = RecordStore(session)
        candidates = await self._candidates(session, resolver, line)
        available = sum(c.hu_qty for c in candidates)
        result.available_qty = available

        if not candidates:
            result.failures.append(
                UnitFailure(None, LINE_INSUFFICIENT_SUPPLY, "no available stock for sku/batch")
            )
            log.warning("allocate %s: no available stock", line.ref.label())
            return

        need = int(quantity) if quantity is not None and int(quantity) > 0 else result.remaining_before
        target = min(available, need) if need > 0 else available
        result.target_qty = target

        cumulative = 0
        for cand in candidates:
            if cumulative >= target:
                break
            if not await self._claim(store, cand.unit_id, line):
                log.info("allocate %s: %s lost to concurrent claim, skipping", line.ref.label(), cand.lpn_number)
                continue
            cumulative += cand.hu_qty
            result.claimed.append(ClaimedUnit(cand.lpn_number, cand.hu_qty, cand.location))

    async def _mark_job_allocated(self, session: AsyncSession, line: DemandLine) -> None:
        # 出库作业 draft → allocated；出口柜 booked → allocated
        if line.ref.kind == DemandKind.OUTBOUND_LINE:
            job = await session.get(OutboundJob, line.job_id)
            initial, target = OutboundJobStatus.DRAFT.value, OutboundJobStatus.ALLOCATED.value
        else:
            job = await session.get(ContainerDetail, line.job_id)
            initial, target = ContainerStatus.BOOKED.value, ContainerStatus.ALLOCATED.value
        if job is not None and job.status == initial:
            job.status = target
            await session.flush()

    # ---------------------------------------------------------------
    # 释放：只退还仍处于 allocated 的 LPN（已拣的不可退）
    # ---------------------------------------------------------------
    async def release(
        self,
        session: AsyncSession,
        line_ref: LineRef,
        lpn_numbers: Sequence[str],
    ) -> ReleaseResult:
        resolver = ProvenanceResolver(session)
        line = await self._load_demand(resolver, line_ref)
        store = RecordStore(session)
        result = ReleaseResult(line_ref=line_ref)

        for lpn in lpn_numbers:
            found = await store.find("put-away-stock", {"lpn_number": lpn, "is_deleted": False}, limit=1)
            if not found:
                result.failures.append(UnitFailure(lpn, UNIT_NOT_FOUND, "lpn not found"))
                continue
            unit = found[0]
            if not is_claimed_by(unit, line_ref):
                result.failures.append(UnitFailure(lpn, UNIT_CONFLICT, "not allocated to this line"))
                continue
            expected = {"allocation_status": AllocationStatus.ALLOCATED.value}
            expected.update(claim_filter(line_ref))
            if not await store.compare_and_set("put-away-stock", unit.id, expected, UNCLAIM_PATCH):
                result.failures.append(
                    UnitFailure(lpn, UNIT_CONFLICT, f"lpn is {unit.allocation_status}, cannot release")
                )
                continue
            result.released.append(lpn)

        for f in result.failures:
            UNIT_FAILURES.labels("release", f.code).inc()
            log.warning("release %s: %s %s (%s)", line_ref.label(), f.lpn_number, f.code, f.reason)

        await sync_line_totals(resolver, line)
        result.allocated_qty = line.allocated_qty
        log.info(
            "release %s released=%d allocated_qty=%d", line_ref.label(), len(result.released), result.allocated_qty
        )
        return result
