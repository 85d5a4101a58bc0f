# app/models/pickup_stock.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import PickupStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PickupStock(Base):
    """
    拣货记录（只追加）：一次拣货动作 = 一行。

    picked_lpns 为快照：[{lpn_id, lpn_number, hu_qty, location}, ...]
    final_picked_up_qty = picked_up_qty + buffer_qty
    """

    __tablename__ = "pickup_stock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # 需求行引用（与 put_away_stock.claim_* 同构）
    demand_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    outbound_product_line_id: Mapped[Optional[int]] = mapped_column(Integer)
    outbound_job_id: Mapped[Optional[int]] = mapped_column(Integer)
    container_stock_allocation_id: Mapped[Optional[int]] = mapped_column(Integer)
    container_line_index: Mapped[Optional[int]] = mapped_column(Integer)
    container_detail_id: Mapped[Optional[int]] = mapped_column(Integer)

    sku_id: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_lpns: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    picked_up_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    buffer_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    final_picked_up_qty: Mapped[int] = mapped_column(Integer, nullable=False)

    pickup_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PickupStatus.COMPLETED.value
    )
    picked_up_by: Mapped[Optional[str]] = mapped_column(String(128))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("ix_pickup_stock_outbound_line", "outbound_product_line_id"),
        Index("ix_pickup_stock_container_line", "container_stock_allocation_id", "container_line_index"),
        Index("ix_pickup_stock_outbound_job", "outbound_job_id"),
        Index("ix_pickup_stock_container_detail", "container_detail_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PickupStock id={self.id} kind={self.demand_kind} "
            f"picked={self.picked_up_qty} buffer={self.buffer_qty}>"
        )
