# app/schemas/inventory.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from app.models.enums import DemandKind


class _Base(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore", populate_by_name=True)


class InventorySearchIn(_Base):
    """库存查询：tenant / warehouse 必填，其余过滤条件均可选（子串、忽略大小写）"""

    tenant_id: int
    warehouse_id: int

    lpn: Optional[str] = None
    location_from: Optional[str] = None
    location_to: Optional[str] = None
    sku_code: Optional[str] = None
    sku_description: Optional[str] = None
    batch: Optional[str] = None
    expiry: Optional[date] = Field(default=None, description="按自然日精确匹配")
    attribute1: Optional[str] = None
    attribute2: Optional[str] = None
    customer_name: Optional[str] = None
    container_number: Optional[str] = None
    customer_reference: Optional[str] = None
    job_code: Optional[str] = None
    booking_code: Optional[str] = None


class LpnViewOut(_Base):
    lpn_number: str
    location: str
    hu_qty: int
    allocation_status: str


class DemandLineSummaryOut(_Base):
    kind: DemandKind
    job_id: int
    job_code: Optional[str] = None
    line_id: int
    index: Optional[int] = None
    quantity: int


class AggregatedRowOut(_Base):
    sku_id: int
    sku_code: str
    sku_description: Optional[str] = None
    batch_number: Optional[str] = None
    total_qty: int
    available_qty: int
    allocated_qty: int
    picked_qty: int
    dispatched_qty: int
    locations: List[str]
    lpns: List[LpnViewOut]
    expiry_date: Optional[date] = None
    attribute1: Optional[str] = None
    attribute2: Optional[str] = None
    outbound_lines: List[DemandLineSummaryOut] = Field(default_factory=list)
    inbound_lines: List[DemandLineSummaryOut] = Field(default_factory=list)
    container_lines: List[DemandLineSummaryOut] = Field(default_factory=list)


class InventorySearchOut(_Base):
    rows: List[AggregatedRowOut]
    group_count: int
    total_qty: int
    scanned: int = 0
    truncated: bool = Field(default=False, description="LPN 数超过 SEARCH_LIMIT，结果不完整")
