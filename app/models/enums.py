# app/models/enums.py
from __future__ import annotations

from enum import StrEnum


class ProvenanceKind(StrEnum):
    """
    LPN 的来源链（put_away_stock.provenance_kind），二选一：

    - INBOUND_LINE    入库作业行（inbound_product_lines.id）
    - CONTAINER_LINE  进口柜库存分配里的第 N 行（container_stock_allocations.product_lines[N]）
    """

    INBOUND_LINE = "INBOUND_LINE"
    CONTAINER_LINE = "CONTAINER_LINE"


class DemandKind(StrEnum):
    """
    需求行的三种形态（分配 / 上架 / 拣货的统一寻址维度）：

    - INBOUND_LINE    入库行：只做上架（供应侧）
    - OUTBOUND_LINE   出库行：做分配 + 拣货（需求侧）
    - CONTAINER_LINE  柜内行：进口柜做上架，出口柜做分配 + 拣货
    """

    INBOUND_LINE = "INBOUND_LINE"
    OUTBOUND_LINE = "OUTBOUND_LINE"
    CONTAINER_LINE = "CONTAINER_LINE"


class AllocationStatus(StrEnum):
    """
    LPN 的占用状态（put_away_stock.allocation_status）：

    available → allocated → picked → dispatched
    （allocated 可回退 available；picked 之后不可逆）
    """

    AVAILABLE = "available"
    ALLOCATED = "allocated"
    PICKED = "picked"
    DISPATCHED = "dispatched"


class AllocationMode(StrEnum):
    AUTO = "auto"
    MANUAL = "manual"


class BookingDirection(StrEnum):
    IMPORT = "import"
    EXPORT = "export"


class OutboundJobStatus(StrEnum):
    DRAFT = "draft"
    ALLOCATED = "allocated"
    PARTIALLY_PICKED = "partially_picked"
    PICKED = "picked"
    READY_TO_DISPATCH = "ready_to_dispatch"
    DISPATCHED = "dispatched"


class ContainerStatus(StrEnum):
    """柜状态里由本服务推进的值：进口柜上架完成，出口柜的拣货 / 发运握手。"""

    BOOKED = "booked"
    PUT_AWAY = "put_away"
    ALLOCATED = "allocated"
    PARTIALLY_PICKED = "partially_picked"
    PICKED = "picked"
    READY_TO_DISPATCH = "ready_to_dispatch"
    DISPATCHED = "dispatched"


class AllocationStage(StrEnum):
    """container_stock_allocations.stage；进口柜内有收货的行全部上架后置为 put_away"""

    PUT_AWAY = "put_away"


class JobKind(StrEnum):
    """拣货完成 / 发运握手的单据维度：出库作业，或出口柜明细"""

    OUTBOUND_JOB = "OUTBOUND_JOB"
    CONTAINER_DETAIL = "CONTAINER_DETAIL"


class PickupStatus(StrEnum):
    DRAFT = "draft"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


__all__ = [
    "ProvenanceKind",
    "DemandKind",
    "AllocationStatus",
    "AllocationMode",
    "BookingDirection",
    "OutboundJobStatus",
    "ContainerStatus",
    "AllocationStage",
    "JobKind",
    "PickupStatus",
]
