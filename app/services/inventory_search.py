# app/services/inventory_search.py
"""
库存聚合查询（只读）。

流程：
    1) 取仓内未删除 LPN：LPN 号 / SKU 条件先在 SQL 里过滤，再套上限 SEARCH_LIMIT（超出时标记 truncated）
    2) 批量预取来源行 / SKU / 作业 / 柜，塞进 ProvenanceResolver 缓存后逐个解析
    3) 内存里依次套过滤条件；跨实体的参考号 / 作业号 / 订舱号先解析成 id 集合再按来源链求交
    4) 按 (sku_code, batch) 分组汇总，并挂上引用该 SKU 的出库 / 入库 / 柜需求行（按单据去重）

不改任何认领 / LPN 状态。
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.metrics import SEARCH_LATENCY
from app.models.container import ContainerBooking, ContainerDetail, ContainerStockAllocation
from app.models.enums import AllocationStatus, BookingDirection, DemandKind, ProvenanceKind
from app.models.inbound import InboundJob, InboundProductLine
from app.models.outbound import OutboundJob, OutboundProductLine
from app.models.put_away_stock import PutAwayStock
from app.models.sku import Sku
from app.services.location_range import in_location_range, natural_key
from app.services.provenance import ProvenanceResolver, UnitMetadata, entity_label

log = logging.getLogger("lpnwms.inventory")


@dataclass(frozen=True)
class SearchFilters:
    lpn: Optional[str] = None
    location_from: Optional[str] = None
    location_to: Optional[str] = None
    sku_code: Optional[str] = None
    sku_description: Optional[str] = None
    batch: Optional[str] = None
    expiry: Optional[date] = None
    attribute1: Optional[str] = None
    attribute2: Optional[str] = None
    customer_name: Optional[str] = None
    container_number: Optional[str] = None
    customer_reference: Optional[str] = None
    job_code: Optional[str] = None
    booking_code: Optional[str] = None


@dataclass(frozen=True)
class LpnView:
    lpn_number: str
    location: str
    hu_qty: int
    allocation_status: str


@dataclass(frozen=True)
class DemandLineSummary:
    kind: DemandKind
    job_id: int
    job_code: Optional[str]
    line_id: int
    index: Optional[int]
    quantity: int


@dataclass
class AggregatedRow:
    sku_id: int
    sku_code: str
    sku_description: Optional[str]
    batch_number: Optional[str]
    total_qty: int = 0
    available_qty: int = 0
    allocated_qty: int = 0
    picked_qty: int = 0
    dispatched_qty: int = 0
    locations: List[str] = field(default_factory=list)
    lpns: List[LpnView] = field(default_factory=list)
    expiry_date: Optional[date] = None
    attribute1: Optional[str] = None
    attribute2: Optional[str] = None
    outbound_lines: List[DemandLineSummary] = field(default_factory=list)
    inbound_lines: List[DemandLineSummary] = field(default_factory=list)
    container_lines: List[DemandLineSummary] = field(default_factory=list)


@dataclass
class SearchOutcome:
    rows: List[AggregatedRow]
    scanned: int
    truncated: bool = False


@dataclass
class _UnitView:
    unit: PutAwayStock
    meta: UnitMetadata
    inbound_job: Optional[InboundJob] = None
    detail: Optional[ContainerDetail] = None
    booking: Optional[ContainerBooking] = None
    customer_name: Optional[str] = None


def _has(needle: Optional[str], *haystacks: Optional[str]) -> bool:
    """大小写不敏感子串；任一字段命中即可"""
    n = needle.strip().lower()
    return any(h is not None and n in str(h).lower() for h in haystacks)


def _active(v: Optional[str]) -> bool:
    return v is not None and v.strip() != ""


def _like(col, needle: str):
    return func.lower(col).contains(needle.strip().lower(), autoescape=True)


async def _by_ids(session: AsyncSession, model, ids: Iterable[int]) -> Dict[int, object]:
    ids = sorted({int(i) for i in ids if i is not None})
    if not ids:
        return {}
    rows = (await session.execute(select(model).where(model.id.in_(ids)))).scalars().all()
    return {r.id: r for r in rows}


class InventorySearch:
    async def search(
        self,
        session: AsyncSession,
        *,
        tenant_id: int,
        warehouse_id: int,
        filters: Optional[SearchFilters] = None,
    ) -> List[AggregatedRow]:
        outcome = await self.search_page(session, tenant_id=tenant_id, warehouse_id=warehouse_id, filters=filters)
        return outcome.rows

    async def search_page(
        self,
        session: AsyncSession,
        *,
        tenant_id: int,
        warehouse_id: int,
        filters: Optional[SearchFilters] = None,
        limit: Optional[int] = None,
    ) -> SearchOutcome:
        """
        同 search，另外带回扫描条数和是否截断。
        LPN 号、SKU 编码 / 描述三个条件在取数 SQL 里先过滤，再套上限；其余条件在内存里做。
        """
        started = time.perf_counter()
        f = filters or SearchFilters()
        limit = int(limit or get_settings().SEARCH_LIMIT)

        stmt = select(PutAwayStock).where(
            PutAwayStock.tenant_id == tenant_id,
            PutAwayStock.warehouse_id == warehouse_id,
            PutAwayStock.is_deleted.is_(False),
        )
        if _active(f.lpn):
            stmt = stmt.where(_like(PutAwayStock.lpn_number, f.lpn))
        if _active(f.sku_code) or _active(f.sku_description):
            sku_ids = select(Sku.id)
            if _active(f.sku_code):
                sku_ids = sku_ids.where(_like(Sku.sku_code, f.sku_code))
            if _active(f.sku_description):
                sku_ids = sku_ids.where(_like(Sku.description, f.sku_description))
            stmt = stmt.where(PutAwayStock.sku_id.in_(sku_ids))

        # 多取一条判断是否截断
        units = list(
            (await session.execute(stmt.order_by(PutAwayStock.lpn_number).limit(limit + 1))).scalars().all()
        )
        truncated = len(units) > limit
        if truncated:
            units = units[:limit]
            log.warning("inventory search truncated at %d units (tenant=%s wh=%s)", limit, tenant_id, warehouse_id)

        views = await self._resolve(session, units)
        views = await self._filter(session, views, f)
        rows = self._group(views)
        await self._decorate(session, rows, tenant_id=tenant_id, warehouse_id=warehouse_id)
        SEARCH_LATENCY.observe(time.perf_counter() - started)

        log.info(
            "inventory search tenant=%s wh=%s units=%d matched=%d groups=%d truncated=%s",
            tenant_id,
            warehouse_id,
            len(units),
            len(views),
            len(rows),
            truncated,
        )
        return SearchOutcome(rows=rows, scanned=len(units), truncated=truncated)

    # ---------------------------------------------------------------
    # 解析
    # ---------------------------------------------------------------
    async def _resolve(self, session: AsyncSession, units: List[PutAwayStock]) -> List[_UnitView]:
        skus = await _by_ids(session, Sku, (u.sku_id for u in units))
        inbound_lines = await _by_ids(session, InboundProductLine, (u.inbound_product_line_id for u in units))
        allocations = await _by_ids(
            session, ContainerStockAllocation, (u.container_stock_allocation_id for u in units)
        )
        inbound_jobs = await _by_ids(session, InboundJob, (u.inbound_job_id for u in units))
        details = await _by_ids(session, ContainerDetail, (u.container_detail_id for u in units))
        bookings = await _by_ids(session, ContainerBooking, (d.booking_id for d in details.values()))

        resolver = ProvenanceResolver(session)
        resolver.prime(
            skus=list(skus.values()),
            inbound_lines=list(inbound_lines.values()),
            allocations=list(allocations.values()),
        )

        job_names: Dict[int, Optional[str]] = {}
        for job in inbound_jobs.values():
            job_names[job.id] = (await resolver.label("inbound-jobs", job)).display_name
        booking_names = {b.id: entity_label("container-bookings", b).display_name for b in bookings.values()}

        views: List[_UnitView] = []
        for u in units:
            meta = await resolver.resolve(u)
            if u.provenance_kind == ProvenanceKind.INBOUND_LINE:
                views.append(
                    _UnitView(
                        u,
                        meta,
                        inbound_job=inbound_jobs.get(u.inbound_job_id),
                        customer_name=job_names.get(u.inbound_job_id),
                    )
                )
            else:
                detail = details.get(u.container_detail_id)
                booking = bookings.get(detail.booking_id) if detail is not None else None
                views.append(
                    _UnitView(
                        u,
                        meta,
                        detail=detail,
                        booking=booking,
                        customer_name=booking_names.get(booking.id) if booking is not None else None,
                    )
                )
        return views

    # ---------------------------------------------------------------
    # 过滤
    # ---------------------------------------------------------------
    async def _filter(self, session: AsyncSession, views: List[_UnitView], f: SearchFilters) -> List[_UnitView]:
        preds: List[Callable[[_UnitView], bool]] = []

        if _active(f.lpn):
            preds.append(lambda v: _has(f.lpn, v.unit.lpn_number))
        if _active(f.location_from) or _active(f.location_to):
            preds.append(lambda v: in_location_range(v.unit.location, f.location_from, f.location_to))
        if _active(f.sku_code):
            preds.append(lambda v: _has(f.sku_code, v.meta.sku_code))
        if _active(f.sku_description):
            preds.append(lambda v: _has(f.sku_description, v.meta.sku_description))
        if _active(f.batch):
            preds.append(lambda v: _has(f.batch, v.meta.batch_number))
        if f.expiry is not None:
            preds.append(lambda v: v.meta.expiry_date == f.expiry)
        if _active(f.attribute1):
            preds.append(lambda v: _has(f.attribute1, v.meta.attribute1))
        if _active(f.attribute2):
            preds.append(lambda v: _has(f.attribute2, v.meta.attribute2))
        if _active(f.customer_name):
            preds.append(lambda v: _has(f.customer_name, v.customer_name))
        if _active(f.container_number):
            preds.append(
                lambda v: _has(
                    f.container_number,
                    v.inbound_job.container_number if v.inbound_job is not None else None,
                    v.detail.container_number if v.detail is not None else None,
                )
            )

        if _active(f.customer_reference):
            job_ids, booking_ids = await self._customer_reference_ids(session, f.customer_reference)
            preds.append(lambda v: self._linked(v, inbound_job_ids=job_ids, booking_ids=booking_ids))
        if _active(f.job_code):
            inbound_ids, outbound_ids = await self._job_code_ids(session, f.job_code)
            preds.append(
                lambda v: self._linked(v, inbound_job_ids=inbound_ids)
                or (v.unit.outbound_job_id is not None and v.unit.outbound_job_id in outbound_ids)
            )
        if _active(f.booking_code):
            detail_ids = await self._booking_code_detail_ids(session, f.booking_code)
            preds.append(
                lambda v: (v.unit.container_detail_id in detail_ids)
                or (v.unit.claim_container_detail_id is not None and v.unit.claim_container_detail_id in detail_ids)
            )

        return [v for v in views if all(p(v) for p in preds)]

    @staticmethod
    def _linked(v: _UnitView, *, inbound_job_ids: Set[int] = frozenset(), booking_ids: Set[int] = frozenset()) -> bool:
        if v.unit.inbound_job_id is not None and v.unit.inbound_job_id in inbound_job_ids:
            return True
        return v.detail is not None and v.detail.booking_id in booking_ids

    async def _customer_reference_ids(self, session: AsyncSession, needle: str) -> Tuple[Set[int], Set[int]]:
        job_ids = (
            await session.execute(
                select(InboundJob.id).where(
                    or_(
                        _like(InboundJob.delivery_customer_reference_number, needle),
                        _like(InboundJob.ordering_customer_reference_number, needle),
                    )
                )
            )
        ).scalars().all()
        booking_ids = (
            await session.execute(
                select(ContainerBooking.id).where(_like(ContainerBooking.customer_reference, needle))
            )
        ).scalars().all()
        return set(job_ids), set(booking_ids)

    async def _job_code_ids(self, session: AsyncSession, needle: str) -> Tuple[Set[int], Set[int]]:
        inbound = (await session.execute(select(InboundJob.id).where(_like(InboundJob.job_code, needle)))).scalars().all()
        outbound = (
            await session.execute(select(OutboundJob.id).where(_like(OutboundJob.job_code, needle)))
        ).scalars().all()
        return set(inbound), set(outbound)

    async def _booking_code_detail_ids(self, session: AsyncSession, needle: str) -> Set[int]:
        rows = (
            await session.execute(
                select(ContainerDetail.id)
                .join(ContainerBooking, ContainerBooking.id == ContainerDetail.booking_id)
                .where(_like(ContainerBooking.booking_code, needle))
            )
        ).scalars().all()
        return set(rows)

    # ---------------------------------------------------------------
    # 分组
    # ---------------------------------------------------------------
    def _group(self, views: List[_UnitView]) -> List[AggregatedRow]:
        groups: "OrderedDict[Tuple[str, Optional[str]], AggregatedRow]" = OrderedDict()
        for v in views:
            key = (v.meta.sku_code, v.meta.batch_number)
            row = groups.get(key)
            if row is None:
                row = AggregatedRow(
                    sku_id=v.meta.sku_id,
                    sku_code=v.meta.sku_code,
                    sku_description=v.meta.sku_description,
                    batch_number=v.meta.batch_number,
                    expiry_date=v.meta.expiry_date,
                    attribute1=v.meta.attribute1,
                    attribute2=v.meta.attribute2,
                )
                groups[key] = row

            qty = int(v.unit.hu_qty)
            row.total_qty += qty
            status = v.unit.allocation_status
            if status == AllocationStatus.AVAILABLE.value:
                row.available_qty += qty
            elif status == AllocationStatus.ALLOCATED.value:
                row.allocated_qty += qty
            elif status == AllocationStatus.PICKED.value:
                row.picked_qty += qty
            elif status == AllocationStatus.DISPATCHED.value:
                row.dispatched_qty += qty
            if v.unit.location not in row.locations:
                row.locations.append(v.unit.location)
            row.lpns.append(LpnView(v.unit.lpn_number, v.unit.location, qty, status))

        rows = list(groups.values())
        for row in rows:
            row.locations.sort(key=natural_key)
        rows.sort(key=lambda r: (r.sku_code, r.batch_number or ""))
        return rows

    # ---------------------------------------------------------------
    # 挂需求行：按单据 id 去重
    # ---------------------------------------------------------------
    async def _decorate(
        self,
        session: AsyncSession,
        rows: List[AggregatedRow],
        *,
        tenant_id: int,
        warehouse_id: int,
    ) -> None:
        sku_ids = sorted({r.sku_id for r in rows})
        if not sku_ids:
            return

        outbound: Dict[int, List[DemandLineSummary]] = {}
        seen_out: Set[Tuple[int, int]] = set()
        res = await session.execute(
            select(OutboundProductLine, OutboundJob)
            .join(OutboundJob, OutboundJob.id == OutboundProductLine.outbound_job_id)
            .where(
                OutboundProductLine.sku_id.in_(sku_ids),
                OutboundJob.tenant_id == tenant_id,
                OutboundJob.warehouse_id == warehouse_id,
            )
            .order_by(OutboundProductLine.id)
        )
        for line, job in res.all():
            if (line.sku_id, job.id) in seen_out:
                continue
            seen_out.add((line.sku_id, job.id))
            outbound.setdefault(line.sku_id, []).append(
                DemandLineSummary(DemandKind.OUTBOUND_LINE, job.id, job.job_code, line.id, None, int(line.required_qty))
            )

        inbound: Dict[int, List[DemandLineSummary]] = {}
        seen_in: Set[Tuple[int, int]] = set()
        res = await session.execute(
            select(InboundProductLine, InboundJob)
            .join(InboundJob, InboundJob.id == InboundProductLine.inbound_job_id)
            .where(
                InboundProductLine.sku_id.in_(sku_ids),
                InboundJob.tenant_id == tenant_id,
                InboundJob.warehouse_id == warehouse_id,
            )
            .order_by(InboundProductLine.id)
        )
        for line, job in res.all():
            if (line.sku_id, job.id) in seen_in:
                continue
            seen_in.add((line.sku_id, job.id))
            inbound.setdefault(line.sku_id, []).append(
                DemandLineSummary(DemandKind.INBOUND_LINE, job.id, job.job_code, line.id, None, int(line.expected_qty))
            )

        container: Dict[int, List[DemandLineSummary]] = {}
        seen_ct: Set[Tuple[int, int]] = set()
        res = await session.execute(
            select(ContainerStockAllocation, ContainerDetail, ContainerBooking)
            .join(ContainerDetail, ContainerDetail.id == ContainerStockAllocation.container_detail_id)
            .join(ContainerBooking, ContainerBooking.id == ContainerDetail.booking_id)
            .where(ContainerBooking.tenant_id == tenant_id, ContainerDetail.warehouse_id == warehouse_id)
            .order_by(ContainerStockAllocation.id)
        )
        wanted = set(sku_ids)
        for alloc, _detail, booking in res.all():
            qty_key = "expected_qty" if booking.direction == BookingDirection.IMPORT else "required_qty"
            for idx, entry in enumerate(alloc.product_lines or []):
                sku_id = int(entry.get("sku_id") or 0)
                if sku_id not in wanted or (sku_id, booking.id) in seen_ct:
                    continue
                seen_ct.add((sku_id, booking.id))
                container.setdefault(sku_id, []).append(
                    DemandLineSummary(
                        DemandKind.CONTAINER_LINE,
                        booking.id,
                        booking.booking_code,
                        alloc.id,
                        idx,
                        int(entry.get(qty_key) or 0),
                    )
                )

        for row in rows:
            row.outbound_lines = list(outbound.get(row.sku_id, []))
            row.inbound_lines = list(inbound.get(row.sku_id, []))
            row.container_lines = list(container.get(row.sku_id, []))
