# app/models/outbound.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import OutboundJobStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OutboundJob(Base):
    """出库作业头：状态由拣货 / 发运握手推进"""

    __tablename__ = "outbound_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)

    job_code: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=OutboundJobStatus.DRAFT.value,
        server_default=text("'draft'"),
    )

    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_reference_number: Mapped[Optional[str]] = mapped_column(String(128))
    consignee_reference_number: Mapped[Optional[str]] = mapped_column(String(128))
    container_number: Mapped[Optional[str]] = mapped_column(String(64))
    required_date: Mapped[Optional[date]] = mapped_column(Date)

    vehicle_id: Mapped[Optional[str]] = mapped_column(String(64))
    driver_id: Mapped[Optional[str]] = mapped_column(String(64))
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (Index("ix_outbound_jobs_tenant_wh", "tenant_id", "warehouse_id"),)

    def __repr__(self) -> str:
        return f"<OutboundJob id={self.id} code={self.job_code} status={self.status}>"


class OutboundProductLine(Base):
    """
    出库行（需求侧）：
    - required_qty：需求数量
    - allocated_qty：由认领关系重算，不直接累加
    - picked_qty：累计拣货，只增不减
    """

    __tablename__ = "outbound_product_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    outbound_job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("outbound_jobs.id", ondelete="CASCADE"), nullable=False
    )
    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)

    batch_number: Mapped[Optional[str]] = mapped_column(String(64))
    lpn_qty: Mapped[Optional[int]] = mapped_column(Integer)
    required_qty: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"), default=0)
    allocated_qty: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"), default=0)
    picked_qty: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"), default=0)

    expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    attribute1: Mapped[Optional[str]] = mapped_column(String(128))
    attribute2: Mapped[Optional[str]] = mapped_column(String(128))

    job = relationship("OutboundJob", lazy="selectin")
    sku = relationship("Sku", lazy="selectin")

    __table_args__ = (Index("ix_outbound_lines_job", "outbound_job_id"),)

    def __repr__(self) -> str:
        return (
            f"<OutboundProductLine id={self.id} job={self.outbound_job_id} "
            f"req={self.required_qty} alloc={self.allocated_qty} picked={self.picked_qty}>"
        )
