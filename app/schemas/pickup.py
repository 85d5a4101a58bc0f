# app/schemas/pickup.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from app.schemas.allocation import UnitFailureOut


class _Base(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore", populate_by_name=True)


class PickupIn(_Base):
    lpn_numbers: List[str] = Field(..., min_length=1)
    buffer_qty: int = Field(default=0, ge=0, description="操作员补录的差额，final = picked + buffer")
    notes: Optional[str] = None
    picked_up_by: Optional[str] = Field(default=None, max_length=128)


class PickupRecordOut(_Base):
    id: int
    demand_kind: str
    picked_lpns: List[Dict[str, Any]]
    picked_up_qty: int
    buffer_qty: int
    final_picked_up_qty: int
    pickup_status: str
    picked_up_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class PickupOut(_Base):
    record: PickupRecordOut
    failures: List[UnitFailureOut] = Field(default_factory=list)


class DispatchIn(_Base):
    vehicle_id: Optional[str] = Field(default=None, max_length=64)
    driver_id: Optional[str] = Field(default=None, max_length=64)


class JobStatusOut(_Base):
    job: str
    status: str
    changed: bool
    dispatched_units: int = 0
