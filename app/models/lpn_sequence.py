# app/models/lpn_sequence.py
from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class LpnSequence(Base):
    """LPN 号段计数器：next_value 只增不减，发号走 CAS（见 LpnGenerator）"""

    __tablename__ = "lpn_sequences"

    name: Mapped[str] = mapped_column(String(32), primary_key=True)
    next_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<LpnSequence {self.name} next={self.next_value}>"
