# app/models/put_away_stock.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import AllocationStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PutAwayStock(Base):
    """
    实物存储单元（LPN / 托盘）。

    - 来源链（provenance_*）二选一，创建后不可改：
        INBOUND_LINE   → inbound_product_line_id (+ inbound_job_id 冗余)
        CONTAINER_LINE → container_stock_allocation_id + container_line_index (+ container_detail_id)
    - 认领（claim_*）同样是带标签的引用：
        OUTBOUND_LINE  → outbound_product_line_id (+ outbound_job_id)
        CONTAINER_LINE → claim_container_allocation_id + claim_container_line_index
    - 认领 / 拣货一律走条件 UPDATE（见 RecordStore.compare_and_set）
    - location 是唯一允许上架后修改的业务字段
    """

    __tablename__ = "put_away_stock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lpn_number: Mapped[str] = mapped_column(String(32), nullable=False)

    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)
    location: Mapped[str] = mapped_column(String(64), nullable=False)

    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)
    hu_qty: Mapped[int] = mapped_column(Integer, nullable=False)

    # ---- 来源链 ----
    provenance_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    inbound_product_line_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("inbound_product_lines.id")
    )
    inbound_job_id: Mapped[Optional[int]] = mapped_column(Integer)
    container_stock_allocation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("container_stock_allocations.id")
    )
    container_line_index: Mapped[Optional[int]] = mapped_column(Integer)
    container_detail_id: Mapped[Optional[int]] = mapped_column(Integer)

    # ---- 认领 / 状态 ----
    allocation_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=AllocationStatus.AVAILABLE.value,
        server_default=text("'available'"),
    )
    claim_kind: Mapped[Optional[str]] = mapped_column(String(16))
    outbound_product_line_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("outbound_product_lines.id")
    )
    outbound_job_id: Mapped[Optional[int]] = mapped_column(Integer)
    claim_container_allocation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("container_stock_allocations.id")
    )
    claim_container_line_index: Mapped[Optional[int]] = mapped_column(Integer)
    claim_container_detail_id: Mapped[Optional[int]] = mapped_column(Integer)

    allocated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    picked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("lpn_number", name="uq_put_away_stock_lpn_number"),
        CheckConstraint(
            "(provenance_kind = 'INBOUND_LINE' AND inbound_product_line_id IS NOT NULL "
            "AND container_stock_allocation_id IS NULL AND container_line_index IS NULL) "
            "OR (provenance_kind = 'CONTAINER_LINE' AND inbound_product_line_id IS NULL "
            "AND container_stock_allocation_id IS NOT NULL AND container_line_index IS NOT NULL)",
            name="ck_put_away_stock_one_provenance",
        ),
        CheckConstraint("hu_qty >= 0", name="ck_put_away_stock_hu_qty_nonneg"),
        Index("ix_put_away_stock_wh_sku", "tenant_id", "warehouse_id", "sku_id"),
        Index("ix_put_away_stock_inbound_line", "inbound_product_line_id"),
        Index(
            "ix_put_away_stock_container_line",
            "container_stock_allocation_id",
            "container_line_index",
        ),
        Index("ix_put_away_stock_claim_outbound", "outbound_product_line_id"),
        Index(
            "ix_put_away_stock_claim_container",
            "claim_container_allocation_id",
            "claim_container_line_index",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PutAwayStock lpn={self.lpn_number} loc={self.location} "
            f"qty={self.hu_qty} status={self.allocation_status}>"
        )
