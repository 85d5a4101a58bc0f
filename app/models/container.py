# app/models/container.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import ContainerStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContainerBooking(Base):
    """柜预订头：direction=import 走上架，direction=export 走分配 + 拣货"""

    __tablename__ = "container_bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)

    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    booking_code: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_reference: Mapped[Optional[str]] = mapped_column(String(128))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<ContainerBooking id={self.id} code={self.booking_code} dir={self.direction}>"


class ContainerDetail(Base):
    """单个柜（柜号 + 仓库 + 状态）；出口柜的拣货 / 发运状态落在这里"""

    __tablename__ = "container_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("container_bookings.id", ondelete="CASCADE"), nullable=False
    )
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)
    container_number: Mapped[Optional[str]] = mapped_column(String(64))

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ContainerStatus.BOOKED.value,
        server_default=text("'booked'"),
    )
    vehicle_id: Mapped[Optional[str]] = mapped_column(String(64))
    driver_id: Mapped[Optional[str]] = mapped_column(String(64))
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    booking = relationship("ContainerBooking", lazy="selectin")

    __table_args__ = (Index("ix_container_details_booking", "booking_id"),)

    def __repr__(self) -> str:
        return f"<ContainerDetail id={self.id} no={self.container_number} status={self.status}>"


class ContainerStockAllocation(Base):
    """
    柜内库存分配记录。product_lines 是内嵌 JSON 列表，一行按 (allocation_id, index) 寻址：

        {"sku_id", "batch_number", "lpn_qty",
         "expected_qty"(进口) / "required_qty"(出口),
         "allocated_qty", "received_qty", "picked_qty",
         "expiry_date"(ISO 日期串), "attribute1", "attribute2"}

    注意：JSON 列原地修改不会被 ORM 追踪，写回时整体替换列表。
    """

    __tablename__ = "container_stock_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    container_detail_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("container_details.id", ondelete="CASCADE"), nullable=False
    )
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("container_bookings.id", ondelete="CASCADE"), nullable=False
    )
    stage: Mapped[Optional[str]] = mapped_column(String(32))

    product_lines: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    detail = relationship("ContainerDetail", lazy="selectin")

    __table_args__ = (Index("ix_container_alloc_detail", "container_detail_id"),)

    def __repr__(self) -> str:
        return (
            f"<ContainerStockAllocation id={self.id} detail={self.container_detail_id} "
            f"lines={len(self.product_lines or [])}>"
        )
