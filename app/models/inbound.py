# app/models/inbound.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InboundJob(Base):
    """入库作业头：收货 + 上架的归属单据"""

    __tablename__ = "inbound_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)

    job_code: Mapped[str] = mapped_column(String(64), nullable=False)

    delivery_customer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True
    )
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    supplier_name: Mapped[Optional[str]] = mapped_column(String(255))
    delivery_customer_reference_number: Mapped[Optional[str]] = mapped_column(String(128))
    ordering_customer_reference_number: Mapped[Optional[str]] = mapped_column(String(128))
    container_number: Mapped[Optional[str]] = mapped_column(String(64))

    expected_date: Mapped[Optional[date]] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    delivery_customer = relationship("Customer", lazy="selectin")

    __table_args__ = (Index("ix_inbound_jobs_tenant_wh", "tenant_id", "warehouse_id"),)

    def __repr__(self) -> str:
        return f"<InboundJob id={self.id} code={self.job_code}>"


class InboundProductLine(Base):
    """
    入库行（供应侧）：
    - expected_qty：预报数量
    - received_qty：累计实收，只增不减（上架时推高）
    - lpn_qty：行级装盘系数，空则取 SKU 默认值
    """

    __tablename__ = "inbound_product_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    inbound_job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inbound_jobs.id", ondelete="CASCADE"), nullable=False
    )
    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)

    batch_number: Mapped[Optional[str]] = mapped_column(String(64))
    lpn_qty: Mapped[Optional[int]] = mapped_column(Integer)
    expected_qty: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"), default=0)
    received_qty: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"), default=0)

    expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    attribute1: Mapped[Optional[str]] = mapped_column(String(128))
    attribute2: Mapped[Optional[str]] = mapped_column(String(128))

    job = relationship("InboundJob", lazy="selectin")
    sku = relationship("Sku", lazy="selectin")

    __table_args__ = (Index("ix_inbound_lines_job", "inbound_job_id"),)

    def __repr__(self) -> str:
        return (
            f"<InboundProductLine id={self.id} job={self.inbound_job_id} "
            f"sku={self.sku_id} recv={self.received_qty}>"
        )
