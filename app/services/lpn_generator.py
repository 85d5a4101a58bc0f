# app/services/lpn_generator.py
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.metrics import LPNS_ISSUED
from app.models.lpn_sequence import LpnSequence
from app.services.errors import ConflictError
from app.services.record_store import RecordStore

log = logging.getLogger("lpnwms.lpn")


def format_lpn(prefix: str, value: int, width: int) -> str:
    return f"{prefix}{value:0{width}d}"


class LpnGenerator:
    """
    LPN 发号器：前缀 + 定长流水号，全局单调、永不复用。

    发号方式：
        1) 读 lpn_sequences.next_value（不存在则初始化为 1）
        2) UPDATE ... SET next_value = seen + count WHERE next_value = seen
        3) rowcount == 1 → 本次拿到 [seen, seen + count)；否则重读重试
    """

    def __init__(
        self,
        *,
        prefix: Optional[str] = None,
        width: Optional[int] = None,
        sequence_name: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.prefix = settings.LPN_PREFIX if prefix is None else prefix
        self.width = int(width or settings.LPN_WIDTH)
        self.sequence_name = sequence_name or settings.LPN_SEQUENCE_NAME
        self.max_retries = int(max_retries or settings.LPN_ISSUE_MAX_RETRIES)

    async def _current(self, session: AsyncSession) -> int:
        seen = (
            await session.execute(
                select(LpnSequence.next_value).where(LpnSequence.name == self.sequence_name)
            )
        ).scalar_one_or_none()
        if seen is not None:
            return int(seen)

        # 首次发号：插入计数器；并发插入撞主键时保留对方的行
        insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
        await session.execute(
            insert(LpnSequence)
            .values(name=self.sequence_name, next_value=1)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        log.info("lpn sequence %s initialized", self.sequence_name)
        seen = (
            await session.execute(
                select(LpnSequence.next_value).where(LpnSequence.name == self.sequence_name)
            )
        ).scalar_one()
        return int(seen)

    async def generate(self, session: AsyncSession, count: int) -> List[str]:
        count = int(count)
        if count <= 0:
            return []

        store = RecordStore(session)
        for attempt in range(1, self.max_retries + 1):
            seen = await self._current(session)
            ok = await store.compare_and_set(
                "lpn-sequences",
                self.sequence_name,
                {"next_value": seen},
                {"next_value": seen + count},
            )
            if ok:
                numbers = [format_lpn(self.prefix, v, self.width) for v in range(seen, seen + count)]
                LPNS_ISSUED.inc(count)
                log.info(
                    "issued %d lpn(s) %s..%s (attempt=%d)",
                    count,
                    numbers[0],
                    numbers[-1],
                    attempt,
                )
                return numbers

        raise ConflictError(
            f"could not reserve {count} lpn number(s) after {self.max_retries} attempts"
        )
