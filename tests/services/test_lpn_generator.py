# tests/services/test_lpn_generator.py
from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.lpn_sequence import LpnSequence
from app.services.lpn_generator import LpnGenerator, format_lpn

pytestmark = pytest.mark.grp_lpn


def test_format_lpn_pads_to_width():
    assert format_lpn("LPN", 1, 8) == "LPN00000001"
    assert format_lpn("P", 123456, 4) == "P123456"


@pytest.mark.asyncio
async def test_first_issue_initializes_sequence(session: AsyncSession):
    gen = LpnGenerator(prefix="LPN", width=8)
    nums = await gen.generate(session, 3)
    assert nums == ["LPN00000001", "LPN00000002", "LPN00000003"]

    seq = await session.get(LpnSequence, gen.sequence_name)
    assert seq is not None and seq.next_value == 4


@pytest.mark.asyncio
async def test_numbers_are_monotonic_and_never_reused(session: AsyncSession):
    gen = LpnGenerator(prefix="T", width=6)
    first = await gen.generate(session, 2)
    second = await gen.generate(session, 5)
    assert await gen.generate(session, 0) == []

    all_nums = first + second
    assert len(set(all_nums)) == 7
    assert all_nums == sorted(all_nums)
    assert second[0] == "T000003"


@pytest.mark.asyncio
async def test_concurrent_sessions_get_disjoint_ranges(async_session_maker):
    gen = LpnGenerator(prefix="LPN", width=8)
    async with async_session_maker() as s:
        await gen.generate(s, 1)
        await s.commit()

    async def worker(n: int):
        async with async_session_maker() as s:
            out = await gen.generate(s, n)
            await s.commit()
            return out

    results = await asyncio.gather(*(worker(4) for _ in range(4)))
    issued = [n for batch in results for n in batch]
    assert len(issued) == 16
    assert len(set(issued)) == 16
    assert "LPN00000001" not in issued
