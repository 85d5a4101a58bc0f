# app/services/provenance.py
"""
来源解析（Provenance Resolver）

一个 LPN 的 SKU / 批次 / 效期 / 属性不存在自身行上，而是沿来源链去读：

    INBOUND_LINE   → inbound_product_lines[id]
    CONTAINER_LINE → container_stock_allocations[id].product_lines[index]

行上没填的效期 / 属性回落到 SKU 主数据。

同一模块里还有需求行的统一读写（DemandLine）：
三种形态（入库行 / 出库行 / 柜内行）对分配、上架、拣货暴露同一个视图，
写回时只改 allocated_qty / received_qty / picked_qty 三个累计字段。

解析器带实例级缓存：同一次查询里反复解析同一行 / 同一 SKU 只读库一次。
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.container import ContainerBooking, ContainerDetail, ContainerStockAllocation
from app.models.enums import BookingDirection, DemandKind, ProvenanceKind
from app.models.inbound import InboundJob, InboundProductLine
from app.models.outbound import OutboundJob, OutboundProductLine
from app.models.put_away_stock import PutAwayStock
from app.models.sku import Sku
from app.services.errors import InvalidIndexError, InvalidStateError, NotFoundError, UnknownCollectionError


# ---------------------------------------------------------------------------
# 引用类型
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class LineRef:
    """需求行引用：kind + id（+ 柜内行的 index）"""

    kind: DemandKind
    id: int
    index: Optional[int] = None

    @classmethod
    def inbound(cls, line_id: int) -> "LineRef":
        return cls(DemandKind.INBOUND_LINE, int(line_id))

    @classmethod
    def outbound(cls, line_id: int) -> "LineRef":
        return cls(DemandKind.OUTBOUND_LINE, int(line_id))

    @classmethod
    def container(cls, allocation_id: int, index: int) -> "LineRef":
        return cls(DemandKind.CONTAINER_LINE, int(allocation_id), int(index))

    def label(self) -> str:
        if self.kind == DemandKind.CONTAINER_LINE:
            return f"{self.kind.value}#{self.id}[{self.index}]"
        return f"{self.kind.value}#{self.id}"


@dataclass(frozen=True)
class UnitMetadata:
    sku_id: int
    sku_code: str
    sku_description: Optional[str]
    batch_number: Optional[str]
    expiry_date: Optional[date]
    attribute1: Optional[str]
    attribute2: Optional[str]


@dataclass
class DemandLine:
    """
    三种需求行的统一视图。

    - expected_qty：入库行 / 进口柜行为预报数，出库行 / 出口柜行为需求数
    - packing_factor：行上 lpn_qty，空则取 SKU 默认
    - is_supply：True 表示该行做上架（入库 / 进口柜），False 表示做分配 + 拣货
    """

    ref: LineRef
    tenant_id: int
    warehouse_id: int
    sku_id: int
    sku_code: str
    batch_number: Optional[str]
    expected_qty: int
    packing_factor: Optional[int]
    allocated_qty: int
    received_qty: int
    picked_qty: int
    expiry_date: Optional[date]
    attribute1: Optional[str]
    attribute2: Optional[str]
    is_supply: bool
    # 归属单据：入库作业 / 出库作业 / 柜明细
    job_id: int
    booking_id: Optional[int] = None
    row: Any = field(default=None, repr=False, compare=False)

    @property
    def remaining_qty(self) -> int:
        return max(0, int(self.expected_qty) - int(self.allocated_qty))


@dataclass(frozen=True)
class EntityLabel:
    display_name: Optional[str]
    code: Optional[str]


# ---------------------------------------------------------------------------
# 工具
# ---------------------------------------------------------------------------
def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def _pick(primary: Any, fallback: Any) -> Any:
    return fallback if _blank(primary) else primary


def parse_date(v: Any) -> Optional[date]:
    """柜内行的日期以 ISO 串存在 JSON 里；兼容 'YYYY-MM-DDTHH:MM:SS' 形式"""
    if v is None or v == "":
        return None
    if isinstance(v, date):
        return v
    return date.fromisoformat(str(v)[:10])


def _int(v: Any) -> int:
    return int(v or 0)


# ---------------------------------------------------------------------------
# 实体显示名：显式按集合登记，不猜字段
# ---------------------------------------------------------------------------
def _inbound_job_label(job: InboundJob) -> EntityLabel:
    name = job.customer_name
    # 只读已加载的 delivery_customer；需要回落时由 ProvenanceResolver.label 先加载
    if _blank(name) and "delivery_customer" not in sa_inspect(job).unloaded:
        if job.delivery_customer is not None:
            name = job.delivery_customer.customer_name
    return EntityLabel(name, job.job_code)


_LABELS: Dict[str, Callable[[Any], EntityLabel]] = {
    "skus": lambda r: EntityLabel(_pick(r.description, r.sku_code), r.sku_code),
    "customers": lambda r: EntityLabel(r.customer_name, None),
    "inbound-jobs": _inbound_job_label,
    "outbound-jobs": lambda r: EntityLabel(r.customer_name, r.job_code),
    "container-bookings": lambda r: EntityLabel(r.customer_name, r.booking_code),
    "container-details": lambda r: EntityLabel(r.container_number, r.container_number),
    "put-away-stock": lambda r: EntityLabel(r.lpn_number, r.lpn_number),
}


def entity_label(collection: str, row: Any) -> EntityLabel:
    try:
        fn = _LABELS[collection]
    except KeyError:
        raise UnknownCollectionError(f"no label rule for collection {collection!r}") from None
    return fn(row)


_LINE_MODELS: Dict[DemandKind, Any] = {
    DemandKind.INBOUND_LINE: InboundProductLine,
    DemandKind.OUTBOUND_LINE: OutboundProductLine,
    DemandKind.CONTAINER_LINE: ContainerStockAllocation,
}


# ---------------------------------------------------------------------------
# 解析器
# ---------------------------------------------------------------------------
class ProvenanceResolver:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._skus: Dict[int, Sku] = {}
        self._inbound_lines: Dict[int, InboundProductLine] = {}
        self._allocations: Dict[int, ContainerStockAllocation] = {}

    # ---- 预热缓存（批量查询时由调用方塞入已加载的行） ----
    def prime(
        self,
        *,
        skus: Optional[List[Sku]] = None,
        inbound_lines: Optional[List[InboundProductLine]] = None,
        allocations: Optional[List[ContainerStockAllocation]] = None,
    ) -> None:
        for s in skus or []:
            self._skus[s.id] = s
        for ln in inbound_lines or []:
            self._inbound_lines[ln.id] = ln
        for a in allocations or []:
            self._allocations[a.id] = a

    async def _sku(self, sku_id: int) -> Sku:
        sku = self._skus.get(sku_id)
        if sku is None:
            sku = await self.session.get(Sku, sku_id)
            if sku is None:
                raise NotFoundError(f"sku #{sku_id} not found")
            self._skus[sku_id] = sku
        return sku

    async def _inbound_line(self, line_id: int) -> InboundProductLine:
        line = self._inbound_lines.get(line_id)
        if line is None:
            line = await self.session.get(InboundProductLine, line_id)
            if line is None:
                raise NotFoundError(f"inbound product line #{line_id} not found")
            self._inbound_lines[line_id] = line
        return line

    async def _allocation(self, allocation_id: int) -> ContainerStockAllocation:
        alloc = self._allocations.get(allocation_id)
        if alloc is None:
            alloc = await self.session.get(ContainerStockAllocation, allocation_id)
            if alloc is None:
                raise NotFoundError(f"container stock allocation #{allocation_id} not found")
            self._allocations[allocation_id] = alloc
        return alloc

    async def label(self, collection: str, row: Any) -> EntityLabel:
        """entity_label 的异步版：入库作业名空且有 delivery_customer 时先把客户加载进来"""
        if (
            collection == "inbound-jobs"
            and _blank(row.customer_name)
            and row.delivery_customer_id is not None
            and "delivery_customer" in sa_inspect(row).unloaded
        ):
            await self.session.refresh(row, ["delivery_customer"])
        return entity_label(collection, row)

    async def _require(self, model, row_id: int, what: str):
        # 父单据按主键显式取，异步会话里不读关系属性
        row = await self.session.get(model, row_id)
        if row is None:
            raise NotFoundError(f"{what} #{row_id} not found")
        return row

    @staticmethod
    def _container_entry(alloc: ContainerStockAllocation, index: Optional[int]) -> Dict[str, Any]:
        lines = alloc.product_lines or []
        if index is None or index < 0 or index >= len(lines):
            raise InvalidIndexError(
                f"container stock allocation #{alloc.id} has {len(lines)} line(s); index {index} is out of range"
            )
        return lines[index]

    # ---------------------------------------------------------------
    # resolve：LPN → SKU / 批次 / 效期 / 属性
    # ---------------------------------------------------------------
    async def resolve(self, unit: Union[PutAwayStock, int]) -> UnitMetadata:
        if not isinstance(unit, PutAwayStock):
            found = await self.session.get(PutAwayStock, int(unit))
            if found is None:
                raise NotFoundError(f"put-away stock #{unit} not found")
            unit = found

        kind = unit.provenance_kind
        if kind == ProvenanceKind.INBOUND_LINE:
            line = await self._inbound_line(int(unit.inbound_product_line_id))
            batch, expiry = line.batch_number, line.expiry_date
            attr1, attr2 = line.attribute1, line.attribute2
        elif kind == ProvenanceKind.CONTAINER_LINE:
            alloc = await self._allocation(int(unit.container_stock_allocation_id))
            entry = self._container_entry(alloc, unit.container_line_index)
            batch = entry.get("batch_number")
            expiry = parse_date(entry.get("expiry_date"))
            attr1, attr2 = entry.get("attribute1"), entry.get("attribute2")
        else:
            raise InvalidStateError(f"lpn {unit.lpn_number} has unknown provenance kind {kind!r}")

        sku = await self._sku(int(unit.sku_id))
        return UnitMetadata(
            sku_id=sku.id,
            sku_code=sku.sku_code,
            sku_description=sku.description,
            batch_number=None if _blank(batch) else batch,
            expiry_date=_pick(expiry, sku.expiry_date),
            attribute1=_pick(attr1, sku.attribute1),
            attribute2=_pick(attr2, sku.attribute2),
        )

    # ---------------------------------------------------------------
    # 需求行：读
    # ---------------------------------------------------------------
    async def load_demand_line(self, ref: LineRef) -> DemandLine:
        if ref.kind == DemandKind.INBOUND_LINE:
            line = await self.session.get(InboundProductLine, ref.id)
            if line is None:
                raise NotFoundError(f"inbound product line #{ref.id} not found")
            job = await self._require(InboundJob, line.inbound_job_id, "inbound job")
            sku = await self._sku(line.sku_id)
            return DemandLine(
                ref=ref,
                tenant_id=job.tenant_id,
                warehouse_id=job.warehouse_id,
                sku_id=line.sku_id,
                sku_code=sku.sku_code,
                batch_number=None if _blank(line.batch_number) else line.batch_number,
                expected_qty=_int(line.expected_qty),
                packing_factor=_pick(line.lpn_qty, sku.lpn_qty),
                allocated_qty=0,
                received_qty=_int(line.received_qty),
                picked_qty=0,
                expiry_date=_pick(line.expiry_date, sku.expiry_date),
                attribute1=_pick(line.attribute1, sku.attribute1),
                attribute2=_pick(line.attribute2, sku.attribute2),
                is_supply=True,
                job_id=job.id,
                row=line,
            )

        if ref.kind == DemandKind.OUTBOUND_LINE:
            line = await self.session.get(OutboundProductLine, ref.id)
            if line is None:
                raise NotFoundError(f"outbound product line #{ref.id} not found")
            job = await self._require(OutboundJob, line.outbound_job_id, "outbound job")
            sku = await self._sku(line.sku_id)
            return DemandLine(
                ref=ref,
                tenant_id=job.tenant_id,
                warehouse_id=job.warehouse_id,
                sku_id=line.sku_id,
                sku_code=sku.sku_code,
                batch_number=None if _blank(line.batch_number) else line.batch_number,
                expected_qty=_int(line.required_qty),
                packing_factor=_pick(line.lpn_qty, sku.lpn_qty),
                allocated_qty=_int(line.allocated_qty),
                received_qty=0,
                picked_qty=_int(line.picked_qty),
                expiry_date=_pick(line.expiry_date, sku.expiry_date),
                attribute1=_pick(line.attribute1, sku.attribute1),
                attribute2=_pick(line.attribute2, sku.attribute2),
                is_supply=False,
                job_id=job.id,
                row=line,
            )

        if ref.kind == DemandKind.CONTAINER_LINE:
            alloc = await self.session.get(ContainerStockAllocation, ref.id)
            if alloc is None:
                raise NotFoundError(f"container stock allocation #{ref.id} not found")
            entry = self._container_entry(alloc, ref.index)
            detail = await self._require(ContainerDetail, alloc.container_detail_id, "container detail")
            booking = await self._require(ContainerBooking, detail.booking_id, "container booking")
            is_import = booking.direction == BookingDirection.IMPORT
            sku_id = int(entry["sku_id"])
            sku = await self._sku(sku_id)
            expected = entry.get("expected_qty") if is_import else entry.get("required_qty")
            return DemandLine(
                ref=ref,
                tenant_id=booking.tenant_id,
                warehouse_id=detail.warehouse_id,
                sku_id=sku_id,
                sku_code=sku.sku_code,
                batch_number=None if _blank(entry.get("batch_number")) else entry.get("batch_number"),
                expected_qty=_int(expected),
                packing_factor=_pick(entry.get("lpn_qty"), sku.lpn_qty),
                allocated_qty=_int(entry.get("allocated_qty")),
                received_qty=_int(entry.get("received_qty")),
                picked_qty=_int(entry.get("picked_qty")),
                expiry_date=_pick(parse_date(entry.get("expiry_date")), sku.expiry_date),
                attribute1=_pick(entry.get("attribute1"), sku.attribute1),
                attribute2=_pick(entry.get("attribute2"), sku.attribute2),
                is_supply=is_import,
                job_id=detail.id,
                booking_id=booking.id,
                row=alloc,
            )

        raise InvalidStateError(f"unknown demand kind {ref.kind!r}")

    # ---------------------------------------------------------------
    # 需求行：写回累计字段
    # ---------------------------------------------------------------
    async def lock_line(self, ref: LineRef) -> None:
        """
        锁住需求行所在的记录行（SELECT ... FOR UPDATE），写回累计字段前调用。
        SQLite 不渲染 FOR UPDATE，库级写锁已让写事务串行。
        """
        model = _LINE_MODELS.get(ref.kind)
        if model is None:
            raise InvalidStateError(f"unknown demand kind {ref.kind!r}")
        await self.session.execute(select(model.id).where(model.id == ref.id).with_for_update())

    async def save_demand_line(self, line: DemandLine) -> None:
        ref = line.ref
        if ref.kind == DemandKind.INBOUND_LINE:
            row: InboundProductLine = line.row
            row.received_qty = int(line.received_qty)
        elif ref.kind == DemandKind.OUTBOUND_LINE:
            row_o: OutboundProductLine = line.row
            row_o.allocated_qty = int(line.allocated_qty)
            row_o.picked_qty = int(line.picked_qty)
        elif ref.kind == DemandKind.CONTAINER_LINE:
            alloc: ContainerStockAllocation = line.row
            # 写前重读，缩小同一柜内不同行并发写回的覆盖窗口
            await self.session.refresh(alloc, ["product_lines"])
            lines = copy.deepcopy(list(alloc.product_lines or []))
            entry = self._container_entry(alloc, ref.index)
            patched = dict(entry)
            if line.is_supply:
                patched["received_qty"] = int(line.received_qty)
            else:
                patched["allocated_qty"] = int(line.allocated_qty)
                patched["picked_qty"] = int(line.picked_qty)
            lines[int(ref.index)] = patched
            alloc.product_lines = lines
            self._allocations.pop(alloc.id, None)
        else:
            raise InvalidStateError(f"unknown demand kind {ref.kind!r}")
        await self.session.flush()


__all__ = [
    "LineRef",
    "UnitMetadata",
    "DemandLine",
    "EntityLabel",
    "entity_label",
    "parse_date",
    "ProvenanceResolver",
]
