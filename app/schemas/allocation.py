# app/schemas/allocation.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict

from app.models.enums import AllocationMode


class _Base(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore", populate_by_name=True)


class UnitFailureOut(_Base):
    lpn_number: Optional[str] = None
    code: str
    reason: str


# ---------- 分配（/allocations/{kind}/{line_id}） ----------


class AllocateIn(_Base):
    """
    分配请求体
    - mode=auto：按 lpn_number 升序整托认领；quantity 可覆盖剩余需求作为目标量
    - mode=manual：逐个认领 lpn_numbers，单个失败不影响其余
    """

    mode: AllocationMode = AllocationMode.AUTO
    lpn_numbers: List[str] = Field(default_factory=list)
    quantity: Optional[int] = Field(default=None, ge=1, description="auto 模式目标数量（可选）")

    @model_validator(mode="after")
    def _manual_needs_lpns(self) -> "AllocateIn":
        if self.mode == AllocationMode.MANUAL and not self.lpn_numbers:
            raise ValueError("manual 模式必须提供 lpn_numbers")
        return self

    model_config = _Base.model_config | {
        "json_schema_extra": {"example": {"mode": "manual", "lpn_numbers": ["LPN00000001", "LPN00000002"]}}
    }


class ClaimedUnitOut(_Base):
    lpn_number: str
    hu_qty: int
    location: str


class AllocateOut(_Base):
    line: str
    mode: AllocationMode
    claimed: List[ClaimedUnitOut] = Field(default_factory=list)
    failures: List[UnitFailureOut] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    available_qty: int = 0
    target_qty: int = 0
    claimed_qty: int = 0
    over_provision_qty: int = 0
    allocated_qty: int = 0


class AvailableUnitOut(_Base):
    lpn_number: str
    hu_qty: int
    location: str
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None


class ReleaseIn(_Base):
    lpn_numbers: List[str] = Field(..., min_length=1)


class ReleaseOut(_Base):
    line: str
    released: List[str] = Field(default_factory=list)
    failures: List[UnitFailureOut] = Field(default_factory=list)
    allocated_qty: int = 0
