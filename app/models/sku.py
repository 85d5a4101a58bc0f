# app/models/sku.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sku(Base):
    """
    SKU 主数据。

    - lpn_qty：默认装盘系数（每个 LPN 装多少件），行上没填时沿用
    - expiry_date / attribute1 / attribute2：行上没填时作为默认值
    """

    __tablename__ = "skus"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)

    sku_code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))

    lpn_qty: Mapped[Optional[int]] = mapped_column(Integer)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    attribute1: Mapped[Optional[str]] = mapped_column(String(128))
    attribute2: Mapped[Optional[str]] = mapped_column(String(128))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (Index("ix_skus_tenant_code", "tenant_id", "sku_code"),)

    def __repr__(self) -> str:
        return f"<Sku id={self.id} code={self.sku_code}>"
