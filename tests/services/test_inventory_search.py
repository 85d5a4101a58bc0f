# tests/services/test_inventory_search.py
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.lpn_seed import (
    TENANT,
    WH,
    seed_container,
    seed_inbound_line,
    seed_outbound_line,
    seed_sku,
    seed_units,
)

from app.models.enums import BookingDirection, DemandKind
from app.services.allocation_service import AllocationService
from app.services.inventory_search import InventorySearch, SearchFilters
from app.services.provenance import LineRef
from app.services.putaway_service import LocationPlan, PutAwayService

pytestmark = pytest.mark.grp_inventory


async def _world(session: AsyncSession):
    """
    SKU-A：入库行 B1（3 托 10，库位 A-01-2 / A-01-10 / A-02-1）+ 进口柜 C1（1 托 12）
    SKU-B：入库行 B9（1 托 5，B-01-1）
    """
    a = await seed_sku(session, "SKU-A", description="Apple juice", expiry_date=date(2030, 1, 1))
    b = await seed_sku(session, "SKU-B", description="Banana chips")

    a_line = await seed_inbound_line(
        session, a, batch_number="B1", job_code="IN-100", customer_name="ACME", customer_ref="PO-555",
        container_number="TGHU0000001",
    )
    units = []
    for loc in ("A-01-10", "A-02-1", "A-01-2"):
        units += await seed_units(session, a_line, [10], location=loc)

    imp = await seed_container(
        session,
        BookingDirection.IMPORT,
        [{"sku_id": a.id, "batch_number": "C1", "expected_qty": 12, "lpn_qty": 12}],
        booking_code="BK-IMP-7",
        container_number="MSCU7654321",
        customer_name="Oceanic",
        customer_reference="REF-OCEAN",
    )
    await PutAwayService().put_away(session, LineRef.container(imp.id, 0), 12, LocationPlan.bulk("C-01-1"))

    b_line = await seed_inbound_line(session, b, batch_number="B9", job_code="IN-200", customer_name="Bobco")
    await seed_units(session, b_line, [5], location="B-01-1")
    return a, b, units, imp


@pytest.mark.asyncio
async def test_groups_by_sku_and_batch_across_both_chains(session: AsyncSession):
    a, b, units, _imp = await _world(session)
    out_line = await seed_outbound_line(session, a, required_qty=10, batch_number="B1", job_code="OUT-1")
    await AllocationService().allocate(session, LineRef.outbound(out_line.id), "manual", lpn_numbers=[units[0].lpn_number])

    rows = await InventorySearch().search(session, tenant_id=TENANT, warehouse_id=WH)
    keys = [(r.sku_code, r.batch_number) for r in rows]
    assert keys == [("SKU-A", "B1"), ("SKU-A", "C1"), ("SKU-B", "B9")]

    a_b1 = rows[0]
    assert a_b1.total_qty == 30
    assert a_b1.available_qty == 20 and a_b1.allocated_qty == 10
    assert a_b1.locations == ["A-01-2", "A-01-10", "A-02-1"]
    assert a_b1.expiry_date == date(2030, 1, 1)
    assert len(a_b1.lpns) == 3

    assert rows[1].total_qty == 12 and rows[1].locations == ["C-01-1"]

    # 挂的需求行：SKU-A 有一条出库行、一条入库行、一条柜行
    assert [(d.kind, d.job_code) for d in a_b1.outbound_lines] == [(DemandKind.OUTBOUND_LINE, "OUT-1")]
    assert [d.job_code for d in a_b1.inbound_lines] == ["IN-100"]
    assert [(d.job_code, d.index) for d in a_b1.container_lines] == [("BK-IMP-7", 0)]
    assert rows[2].outbound_lines == [] and [d.job_code for d in rows[2].inbound_lines] == ["IN-200"]


@pytest.mark.asyncio
async def test_attribute_filters(session: AsyncSession):
    await _world(session)
    svc = InventorySearch()

    async def keys(**kw):
        rows = await svc.search(session, tenant_id=TENANT, warehouse_id=WH, filters=SearchFilters(**kw))
        return [(r.sku_code, r.batch_number, r.total_qty) for r in rows]

    assert await keys(sku_code="sku-b") == [("SKU-B", "B9", 5)]
    assert await keys(sku_description="JUICE") == [("SKU-A", "B1", 30), ("SKU-A", "C1", 12)]
    assert await keys(batch="c1") == [("SKU-A", "C1", 12)]
    assert await keys(expiry=date(2030, 1, 1)) == [("SKU-A", "B1", 30), ("SKU-A", "C1", 12)]
    assert await keys(location_from="A-01-2", location_to="A-01-10") == [("SKU-A", "B1", 20)]
    assert await keys(lpn="LPN9999") == []


@pytest.mark.asyncio
async def test_cross_entity_filters(session: AsyncSession):
    await _world(session)
    svc = InventorySearch()

    async def keys(**kw):
        rows = await svc.search(session, tenant_id=TENANT, warehouse_id=WH, filters=SearchFilters(**kw))
        return [(r.sku_code, r.batch_number) for r in rows]

    assert await keys(customer_name="oceanic") == [("SKU-A", "C1")]
    assert await keys(customer_name="bob") == [("SKU-B", "B9")]
    assert await keys(container_number="TGHU") == [("SKU-A", "B1")]
    assert await keys(container_number="mscu76") == [("SKU-A", "C1")]
    assert await keys(customer_reference="po-555") == [("SKU-A", "B1")]
    assert await keys(customer_reference="ocean") == [("SKU-A", "C1")]
    assert await keys(job_code="IN-200") == [("SKU-B", "B9")]
    assert await keys(booking_code="bk-imp") == [("SKU-A", "C1")]


@pytest.mark.asyncio
async def test_other_warehouse_is_invisible(session: AsyncSession):
    await _world(session)
    assert await InventorySearch().search(session, tenant_id=TENANT, warehouse_id=WH + 1) == []


@pytest.mark.asyncio
async def test_sku_filter_reaches_units_beyond_the_search_limit(session: AsyncSession):
    early = await seed_sku(session, "SKU-EARLY")
    late = await seed_sku(session, "SKU-LATE")
    await seed_units(session, await seed_inbound_line(session, early, batch_number="E1"), [1, 1, 1, 1, 1])
    await seed_units(session, await seed_inbound_line(session, late, batch_number="L1"), [7, 8])
    svc = InventorySearch()

    capped = await svc.search_page(session, tenant_id=TENANT, warehouse_id=WH, limit=3)
    assert capped.truncated is True
    assert capped.scanned == 3
    assert [(r.sku_code, r.total_qty) for r in capped.rows] == [("SKU-EARLY", 3)]

    narrowed = await svc.search_page(
        session, tenant_id=TENANT, warehouse_id=WH, filters=SearchFilters(sku_code="sku-late"), limit=3
    )
    assert narrowed.truncated is False
    assert narrowed.scanned == 2
    assert [(r.sku_code, r.total_qty) for r in narrowed.rows] == [("SKU-LATE", 15)]
