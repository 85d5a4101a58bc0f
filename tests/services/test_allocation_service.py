# tests/services/test_allocation_service.py
from __future__ import annotations

import asyncio
import logging

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.lpn_seed import (
    seed_container,
    seed_inbound_line,
    seed_outbound_job,
    seed_outbound_line,
    seed_sku,
    seed_units,
)

from app.models.container import ContainerDetail
from app.models.enums import AllocationMode, AllocationStatus, BookingDirection, ContainerStatus, OutboundJobStatus
from app.models.outbound import OutboundJob
from app.models.put_away_stock import PutAwayStock
from app.services.allocation_service import AllocationService
from app.services.errors import InvalidStateError, NotFoundError
from app.services.provenance import LineRef
from app.services.record_store import RecordStore

pytestmark = pytest.mark.grp_allocation


@pytest.mark.asyncio
async def test_auto_claims_whole_pallets_until_target_and_warns_on_over_provision(
    session: AsyncSession, caplog
):
    sku = await seed_sku(session, "SKU-A")
    in_line = await seed_inbound_line(session, sku, expected_qty=25)
    u10, u15 = await seed_units(session, in_line, [10, 15])
    out_line = await seed_outbound_line(session, sku, required_qty=20)

    with caplog.at_level(logging.WARNING, logger="lpnwms.allocation"):
        r = await AllocationService().allocate(session, LineRef.outbound(out_line.id), AllocationMode.AUTO)

    assert [c.lpn_number for c in r.claimed] == [u10.lpn_number, u15.lpn_number]
    assert r.claimed_qty == 25
    assert r.target_qty == 20
    assert r.over_provision_qty == 5
    assert r.allocated_qty == 25 and out_line.allocated_qty == 25
    assert r.failures == []
    assert r.warnings and "over-provisioned by 5" in r.warnings[0]
    assert any("over-provisioned" in rec.getMessage() for rec in caplog.records)

    for u in (u10, u15):
        assert u.allocation_status == AllocationStatus.ALLOCATED.value
        assert u.outbound_product_line_id == out_line.id
        assert u.outbound_job_id == out_line.outbound_job_id

    job = await session.get(OutboundJob, out_line.outbound_job_id)
    assert job.status == OutboundJobStatus.ALLOCATED.value


@pytest.mark.asyncio
async def test_auto_respects_batch_and_quantity_override(session: AsyncSession):
    sku = await seed_sku(session, "SKU-B")
    b1 = await seed_inbound_line(session, sku, batch_number="B1")
    b2 = await seed_inbound_line(session, sku, batch_number="B2", job_code="IN-0002")
    b1_units = await seed_units(session, b1, [10, 10, 10])
    await seed_units(session, b2, [10])
    out_line = await seed_outbound_line(session, sku, required_qty=30, batch_number="B1")

    r = await AllocationService().allocate(session, LineRef.outbound(out_line.id), "auto", quantity=15)
    assert [c.lpn_number for c in r.claimed] == [u.lpn_number for u in b1_units[:2]]
    assert r.claimed_qty == 20
    assert r.available_qty == 30


@pytest.mark.asyncio
async def test_auto_without_stock_reports_insufficient_supply(session: AsyncSession):
    sku = await seed_sku(session, "SKU-C")
    out_line = await seed_outbound_line(session, sku, required_qty=5)

    r = await AllocationService().allocate(session, LineRef.outbound(out_line.id), "auto")
    assert r.claimed == []
    assert [f.code for f in r.failures] == ["INSUFFICIENT_SUPPLY"]
    job = await session.get(OutboundJob, out_line.outbound_job_id)
    assert job.status == OutboundJobStatus.DRAFT.value


@pytest.mark.asyncio
async def test_auto_on_fully_allocated_line_claims_all_available(session: AsyncSession):
    sku = await seed_sku(session, "SKU-D")
    in_line = await seed_inbound_line(session, sku)
    await seed_units(session, in_line, [10, 10, 10])
    out_line = await seed_outbound_line(session, sku, required_qty=10)
    svc = AllocationService()
    ref = LineRef.outbound(out_line.id)

    first = await svc.allocate(session, ref, "auto")
    assert first.claimed_qty == 10

    second = await svc.allocate(session, ref, "auto")
    assert second.remaining_before == 0
    assert second.claimed_qty == 20
    assert second.warnings and "fully allocated" in second.warnings[0]
    assert second.allocated_qty == 30


@pytest.mark.asyncio
async def test_manual_isolates_per_unit_failures(session: AsyncSession):
    sku = await seed_sku(session, "SKU-E")
    other_sku = await seed_sku(session, "SKU-Z")
    in_line = await seed_inbound_line(session, sku)
    other_in = await seed_inbound_line(session, other_sku, job_code="IN-0009")
    a, b, c = await seed_units(session, in_line, [10, 10, 10])
    (z,) = await seed_units(session, other_in, [10])

    job = await seed_outbound_job(session)
    mine = await seed_outbound_line(session, sku, required_qty=30, job=job)
    theirs = await seed_outbound_line(session, sku, required_qty=10, job=job)
    svc = AllocationService()

    await svc.allocate(session, LineRef.outbound(theirs.id), "manual", lpn_numbers=[b.lpn_number])

    r = await svc.allocate(
        session,
        LineRef.outbound(mine.id),
        "manual",
        lpn_numbers=[a.lpn_number, b.lpn_number, c.lpn_number, z.lpn_number, "LPN99999999"],
    )
    assert [u.lpn_number for u in r.claimed] == [a.lpn_number, c.lpn_number]
    codes = {f.lpn_number: f.code for f in r.failures}
    assert codes == {b.lpn_number: "CONFLICT", z.lpn_number: "MISMATCH", "LPN99999999": "NOT_FOUND"}
    assert r.allocated_qty == 20

    # 同一行重复认领：CONFLICT，不重复累加
    again = await svc.allocate(session, LineRef.outbound(mine.id), "manual", lpn_numbers=[a.lpn_number])
    assert again.claimed == [] and again.failures[0].code == "CONFLICT"
    assert again.allocated_qty == 20


@pytest.mark.asyncio
async def test_export_container_line_claims_with_container_fields(session: AsyncSession):
    sku = await seed_sku(session, "SKU-F")
    in_line = await seed_inbound_line(session, sku, batch_number="B7")
    units = await seed_units(session, in_line, [10, 10])
    alloc = await seed_container(
        session,
        BookingDirection.EXPORT,
        [{"sku_id": sku.id, "batch_number": "OTHER", "required_qty": 5},
         {"sku_id": sku.id, "batch_number": "B7", "required_qty": 10}],
    )

    r = await AllocationService().allocate(session, LineRef.container(alloc.id, 1), "auto")
    assert [c.lpn_number for c in r.claimed] == [units[0].lpn_number]

    u = units[0]
    assert u.claim_container_allocation_id == alloc.id
    assert u.claim_container_line_index == 1
    assert u.claim_container_detail_id == alloc.container_detail_id
    assert u.outbound_product_line_id is None

    await session.refresh(alloc)
    assert alloc.product_lines[1]["allocated_qty"] == 10
    assert "allocated_qty" not in alloc.product_lines[0]
    detail = await session.get(ContainerDetail, alloc.container_detail_id)
    assert detail.status == ContainerStatus.ALLOCATED.value


@pytest.mark.asyncio
async def test_supply_lines_and_missing_lines_are_rejected(session: AsyncSession):
    sku = await seed_sku(session, "SKU-G")
    in_line = await seed_inbound_line(session, sku)
    svc = AllocationService()

    with pytest.raises(InvalidStateError):
        await svc.allocate(session, LineRef.inbound(in_line.id), "auto")
    with pytest.raises(NotFoundError):
        await svc.allocate(session, LineRef.outbound(424242), "auto")


@pytest.mark.asyncio
async def test_available_stock_lists_matching_units_oldest_first(session: AsyncSession):
    sku = await seed_sku(session, "SKU-H")
    in_line = await seed_inbound_line(session, sku)
    units = await seed_units(session, in_line, [5, 6, 7])
    out_line = await seed_outbound_line(session, sku, required_qty=6)
    svc = AllocationService()
    ref = LineRef.outbound(out_line.id)

    await svc.allocate(session, ref, "manual", lpn_numbers=[units[1].lpn_number])
    avail = await svc.available_stock(session, ref)
    assert [a.lpn_number for a in avail] == [units[0].lpn_number, units[2].lpn_number]
    assert all(a.batch_number == "B1" for a in avail)


@pytest.mark.asyncio
async def test_release_returns_units_and_recomputes(session: AsyncSession):
    sku = await seed_sku(session, "SKU-I")
    in_line = await seed_inbound_line(session, sku)
    a, b = await seed_units(session, in_line, [10, 10])
    out_line = await seed_outbound_line(session, sku, required_qty=20)
    svc = AllocationService()
    ref = LineRef.outbound(out_line.id)

    await svc.allocate(session, ref, "auto")
    r = await svc.release(session, ref, [a.lpn_number, "LPN-NOPE"])
    assert r.released == [a.lpn_number]
    assert [f.code for f in r.failures] == ["NOT_FOUND"]
    assert r.allocated_qty == 10 and out_line.allocated_qty == 10

    assert a.allocation_status == AllocationStatus.AVAILABLE.value
    assert a.claim_kind is None and a.outbound_product_line_id is None
    assert b.allocation_status == AllocationStatus.ALLOCATED.value


@pytest.mark.asyncio
async def test_concurrent_manual_claims_on_same_unit_have_one_winner(async_session_maker):
    async with async_session_maker() as s:
        sku = await seed_sku(s, "SKU-J")
        in_line = await seed_inbound_line(s, sku)
        (unit,) = await seed_units(s, in_line, [10])
        job = await seed_outbound_job(s)
        l1 = await seed_outbound_line(s, sku, required_qty=10, job=job)
        l2 = await seed_outbound_line(s, sku, required_qty=10, job=job)
        lpn, ids = unit.lpn_number, (l1.id, l2.id)
        await s.commit()

    async def claim(line_id: int):
        async with async_session_maker() as s:
            r = await AllocationService().allocate(s, LineRef.outbound(line_id), "manual", lpn_numbers=[lpn])
            await s.commit()
            return r

    results = await asyncio.gather(*(claim(i) for i in ids))
    winners = [r for r in results if r.claimed]
    losers = [r for r in results if not r.claimed]
    assert len(winners) == 1 and len(losers) == 1
    assert losers[0].failures[0].code == "CONFLICT"

    async with async_session_maker() as s:
        rows = await RecordStore(s).find("put-away-stock", {"lpn_number": lpn})
        assert len(rows) == 1
        winner_line = winners[0].line_ref.id
        assert rows[0].outbound_product_line_id == winner_line
        assert rows[0].allocation_status == AllocationStatus.ALLOCATED.value
