# app/services/putaway_service.py
"""
上架引擎：把收货数量按装盘系数拆成托盘（LPN），落到库位。

    pallet_count = ceil(received / factor)            factor <= 0 → 0
    第 i 托（i < count-1）= factor，最后一托 = received - factor*(count-1)，下限 0

可续作：received_qty 是该行累计实收。先汇总该行已有 LPN（同来源 + 同 SKU，未删除）的
托数 existing 与数量 placed，只把 pending = received - placed 按上式拆托，新托序号从 existing 往后排；
重复调用同一 received 不会多建、也不会重新编号；收货增长或删托后补建都保持 Σhu_qty = received。

进口柜行：柜内所有有实收的行都上架齐（placed ≥ received）后，该柜分配记录 stage 置 put_away；
一个柜的分配记录全部 put_away 后，柜状态 booked → put_away。

库位计划：
    LocationPlan.bulk("A-01-1")              全部新托同一库位
    LocationPlan.individual({3: "A-01-2"})   按托盘序号（0 起，整行计数，续作时接着已有托数往后）指定
没拿到库位的托本次跳过；一个都放不了 → NoLocationProvidedError。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.metrics import UNITS_PUT_AWAY
from app.models.container import ContainerDetail, ContainerStockAllocation
from app.models.enums import AllocationStage, AllocationStatus, ContainerStatus, DemandKind, ProvenanceKind
from app.models.put_away_stock import PutAwayStock
from app.services.errors import (
    ConflictError,
    InvalidStateError,
    NoLocationProvidedError,
    NotFoundError,
)
from app.services.lpn_generator import LpnGenerator
from app.services.provenance import DemandLine, LineRef, ProvenanceResolver
from app.services.record_store import RecordStore

log = logging.getLogger("lpnwms.putaway")


# ---------------------------------------------------------------------------
# 托盘计算（纯函数）
# ---------------------------------------------------------------------------
def pallet_count(received_qty: int, factor: Optional[int]) -> int:
    if not factor or factor <= 0 or received_qty <= 0:
        return 0
    return math.ceil(received_qty / factor)


def pallet_quantities(received_qty: int, factor: Optional[int]) -> List[int]:
    n = pallet_count(received_qty, factor)
    if n == 0:
        return []
    last = max(0, received_qty - factor * (n - 1))
    return [factor] * (n - 1) + [last]


@dataclass(frozen=True)
class LocationPlan:
    bulk_location: Optional[str] = None
    by_index: Mapping[int, str] = field(default_factory=dict)

    @classmethod
    def bulk(cls, location: str) -> "LocationPlan":
        return cls(bulk_location=location)

    @classmethod
    def individual(cls, mapping: Mapping[int, str]) -> "LocationPlan":
        return cls(by_index={int(k): v for k, v in mapping.items()})

    def location_for(self, index: int) -> Optional[str]:
        loc = self.by_index.get(index) if self.by_index else self.bulk_location
        if loc is None or not str(loc).strip():
            return None
        return str(loc).strip()


def _provenance_fields(line: DemandLine) -> Dict[str, object]:
    if line.ref.kind == DemandKind.INBOUND_LINE:
        return {
            "provenance_kind": ProvenanceKind.INBOUND_LINE.value,
            "inbound_product_line_id": line.ref.id,
            "inbound_job_id": line.job_id,
        }
    return {
        "provenance_kind": ProvenanceKind.CONTAINER_LINE.value,
        "container_stock_allocation_id": line.ref.id,
        "container_line_index": line.ref.index,
        "container_detail_id": line.job_id,
    }


def _provenance_criteria(ref: LineRef) -> list:
    if ref.kind == DemandKind.INBOUND_LINE:
        return [
            PutAwayStock.provenance_kind == ProvenanceKind.INBOUND_LINE.value,
            PutAwayStock.inbound_product_line_id == ref.id,
        ]
    return [
        PutAwayStock.provenance_kind == ProvenanceKind.CONTAINER_LINE.value,
        PutAwayStock.container_stock_allocation_id == ref.id,
        PutAwayStock.container_line_index == ref.index,
    ]


class PutAwayService:
    def __init__(self, generator: Optional[LpnGenerator] = None) -> None:
        self.generator = generator or LpnGenerator()

    async def existing_totals(self, session: AsyncSession, line: DemandLine) -> Tuple[int, int]:
        """该行已上架（未删除）的 (托数, Σhu_qty)"""
        stmt = select(
            func.count(PutAwayStock.id),
            func.coalesce(func.sum(PutAwayStock.hu_qty), 0),
        ).where(
            *_provenance_criteria(line.ref),
            PutAwayStock.sku_id == line.sku_id,
            PutAwayStock.is_deleted.is_(False),
        )
        count, placed = (await session.execute(stmt)).one()
        return int(count), int(placed)

    async def put_away(
        self,
        session: AsyncSession,
        line_ref: LineRef,
        received_qty: int,
        plan: LocationPlan,
        *,
        packing_factor: Optional[int] = None,
    ) -> List[PutAwayStock]:
        resolver = ProvenanceResolver(session)
        line = await resolver.load_demand_line(line_ref)
        if not line.is_supply:
            raise InvalidStateError(f"{line_ref.label()} is not a put-away target")

        received_qty = int(received_qty)
        factor = int(packing_factor) if packing_factor else line.packing_factor
        existing, placed = await self.existing_totals(session, line)
        quantities = pallet_quantities(max(0, received_qty - placed), factor)

        pending: List[Tuple[int, int, str]] = []
        for j, qty in enumerate(quantities):
            loc = plan.location_for(existing + j)
            if loc is not None:
                pending.append((existing + j, qty, loc))

        if quantities and not pending:
            raise NoLocationProvidedError(
                f"{line_ref.label()}: no location for pallets {existing}..{existing + len(quantities) - 1}"
            )

        created: List[PutAwayStock] = []
        if pending:
            numbers = await self.generator.generate(session, len(pending))
            store = RecordStore(session)
            prov = _provenance_fields(line)
            for (_i, qty, loc), lpn in zip(pending, numbers):
                data = {
                    "lpn_number": lpn,
                    "tenant_id": line.tenant_id,
                    "warehouse_id": line.warehouse_id,
                    "location": loc,
                    "sku_id": line.sku_id,
                    "hu_qty": qty,
                    "allocation_status": AllocationStatus.AVAILABLE.value,
                }
                data.update(prov)
                created.append(await store.create("put-away-stock", data))

        if received_qty > line.received_qty:
            line.received_qty = received_qty
            await resolver.save_demand_line(line)

        if created:
            UNITS_PUT_AWAY.labels(line_ref.kind.value).inc(len(created))
            if line_ref.kind == DemandKind.CONTAINER_LINE:
                await self._advance_container_stage(session, line)

        log.info(
            "put-away %s received=%d placed_before=%d factor=%s pending_pallets=%d existing=%d created=%d skipped=%d",
            line_ref.label(),
            received_qty,
            placed,
            factor,
            len(quantities),
            existing,
            len(created),
            len(quantities) - len(pending),
        )
        return created

    # ---------------------------------------------------------------
    # 进口柜：收货行全部上架后推进 stage / 柜状态
    # ---------------------------------------------------------------
    async def _placed_by_index(self, session: AsyncSession, allocation_id: int) -> Dict[int, int]:
        rows = await session.execute(
            select(PutAwayStock.container_line_index, func.coalesce(func.sum(PutAwayStock.hu_qty), 0))
            .where(
                PutAwayStock.provenance_kind == ProvenanceKind.CONTAINER_LINE.value,
                PutAwayStock.container_stock_allocation_id == allocation_id,
                PutAwayStock.is_deleted.is_(False),
            )
            .group_by(PutAwayStock.container_line_index)
        )
        return {int(idx): int(qty) for idx, qty in rows.all()}

    async def _advance_container_stage(self, session: AsyncSession, line: DemandLine) -> None:
        alloc: ContainerStockAllocation = line.row
        await session.refresh(alloc, ["product_lines", "stage"])
        if alloc.stage != AllocationStage.PUT_AWAY.value:
            placed = await self._placed_by_index(session, alloc.id)
            received = [
                (i, int(entry.get("received_qty") or 0))
                for i, entry in enumerate(alloc.product_lines or [])
                if int(entry.get("received_qty") or 0) > 0
            ]
            if not received or any(placed.get(i, 0) < qty for i, qty in received):
                return
            alloc.stage = AllocationStage.PUT_AWAY.value
            await session.flush()
            log.info("container allocation #%s stage -> %s", alloc.id, alloc.stage)

        stages = (
            await session.execute(
                select(ContainerStockAllocation.stage).where(
                    ContainerStockAllocation.container_detail_id == alloc.container_detail_id
                )
            )
        ).scalars().all()
        if any(s != AllocationStage.PUT_AWAY.value for s in stages):
            return
        detail = await session.get(ContainerDetail, alloc.container_detail_id)
        if detail is not None and detail.status == ContainerStatus.BOOKED.value:
            detail.status = ContainerStatus.PUT_AWAY.value
            await session.flush()
            log.info("container detail #%s status %s -> %s", detail.id, ContainerStatus.BOOKED.value, detail.status)

    # ---------------------------------------------------------------
    # 移库：location 是上架后唯一允许改的字段
    # ---------------------------------------------------------------
    async def _unit(self, session: AsyncSession, lpn_number: str) -> PutAwayStock:
        found = await RecordStore(session).find(
            "put-away-stock", {"lpn_number": lpn_number, "is_deleted": False}, limit=1
        )
        if not found:
            raise NotFoundError(f"lpn {lpn_number} not found")
        return found[0]

    async def relocate(self, session: AsyncSession, lpn_number: str, location: str) -> PutAwayStock:
        location = (location or "").strip()
        if not location:
            raise NoLocationProvidedError(f"lpn {lpn_number}: empty location")
        unit = await self._unit(session, lpn_number)
        old = unit.location
        unit = await RecordStore(session).update("put-away-stock", unit.id, {"location": location})
        log.info("relocate %s %s -> %s", lpn_number, old, location)
        return unit

    # ---------------------------------------------------------------
    # 更正：软删除未被认领的 LPN；之后同一行再上架会补建该托
    # ---------------------------------------------------------------
    async def soft_delete_unit(self, session: AsyncSession, lpn_number: str) -> PutAwayStock:
        unit = await self._unit(session, lpn_number)
        if unit.allocation_status != AllocationStatus.AVAILABLE.value:
            raise ConflictError(f"lpn {lpn_number} is {unit.allocation_status}; release it first")
        ok = await RecordStore(session).compare_and_set(
            "put-away-stock",
            unit.id,
            {"allocation_status": AllocationStatus.AVAILABLE.value, "is_deleted": False},
            {"is_deleted": True},
        )
        if not ok:
            raise ConflictError(f"lpn {lpn_number} was claimed concurrently")
        log.info("soft-deleted %s", lpn_number)
        return unit
