# app/schemas/putaway.py
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class _Base(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore", populate_by_name=True)


class PutAwayIn(_Base):
    """
    上架请求体
    - location：整批同一库位（bulk）
    - locations：按托盘序号（0 起）指定库位（individual），给了就忽略 location
    """

    received_qty: int = Field(..., ge=0, description="累计实收数量")
    packing_factor: Optional[int] = Field(default=None, ge=1, description="装盘系数，空则取行 / SKU 默认")
    location: Optional[str] = Field(default=None, max_length=64)
    locations: Optional[Dict[int, str]] = None

    model_config = _Base.model_config | {
        "json_schema_extra": {"example": {"received_qty": 50, "packing_factor": 10, "location": "A-01-1"}}
    }


class PutAwayUnitOut(_Base):
    id: int
    lpn_number: str
    location: str
    sku_id: int
    hu_qty: int
    allocation_status: str


class PutAwayOut(_Base):
    line: str
    created_count: int
    created: List[PutAwayUnitOut] = Field(default_factory=list)


class GenerateLpnsIn(_Base):
    count: int = Field(..., ge=1, le=1000)


class GenerateLpnsOut(_Base):
    lpn_numbers: List[str]


class RelocateIn(_Base):
    location: str = Field(..., min_length=1, max_length=64)
