# tests/services/test_provenance_resolver.py
from __future__ import annotations

import gc
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.lpn_seed import TENANT, WH, seed_container, seed_inbound_line, seed_sku, seed_units

from app.models.customer import Customer
from app.models.enums import BookingDirection, ProvenanceKind
from app.models.inbound import InboundJob
from app.services.errors import InvalidIndexError, NotFoundError, UnknownCollectionError
from app.services.provenance import LineRef, ProvenanceResolver, entity_label, parse_date
from app.services.record_store import RecordStore

pytestmark = pytest.mark.grp_provenance


@pytest.mark.asyncio
async def test_inbound_unit_resolves_through_line_with_sku_fallback(session: AsyncSession):
    sku = await seed_sku(
        session, "SKU-A", expiry_date=date(2030, 1, 31), attribute1="cold", attribute2="fragile"
    )
    line = await seed_inbound_line(session, sku, batch_number="B-77", attribute1="frozen")
    (unit,) = await seed_units(session, line, [10])

    meta = await ProvenanceResolver(session).resolve(unit)
    assert meta.sku_code == "SKU-A"
    assert meta.batch_number == "B-77"
    assert meta.attribute1 == "frozen"
    assert meta.attribute2 == "fragile"
    assert meta.expiry_date == date(2030, 1, 31)

    # 按 id 解析结果一致
    assert await ProvenanceResolver(session).resolve(unit.id) == meta


@pytest.mark.asyncio
async def test_container_unit_resolves_json_entry(session: AsyncSession):
    sku = await seed_sku(session, "SKU-C", attribute2="pallet-wrap")
    alloc = await seed_container(
        session,
        BookingDirection.IMPORT,
        [
            {"sku_id": sku.id, "batch_number": "C0", "expected_qty": 5},
            {"sku_id": sku.id, "batch_number": "C1", "expected_qty": 5, "expiry_date": "2031-06-30T00:00:00"},
        ],
    )
    unit = await RecordStore(session).create(
        "put-away-stock",
        {
            "lpn_number": "LPNC0000001",
            "tenant_id": TENANT,
            "warehouse_id": WH,
            "location": "C-01-1",
            "sku_id": sku.id,
            "hu_qty": 5,
            "provenance_kind": ProvenanceKind.CONTAINER_LINE.value,
            "container_stock_allocation_id": alloc.id,
            "container_line_index": 1,
            "container_detail_id": alloc.container_detail_id,
        },
    )

    meta = await ProvenanceResolver(session).resolve(unit)
    assert meta.batch_number == "C1"
    assert meta.expiry_date == date(2031, 6, 30)
    assert meta.attribute2 == "pallet-wrap"

    # 行被删短后，原序号越界
    alloc.product_lines = alloc.product_lines[:1]
    await session.flush()
    with pytest.raises(InvalidIndexError):
        await ProvenanceResolver(session).resolve(unit)


@pytest.mark.asyncio
async def test_missing_rows_raise_not_found(session: AsyncSession):
    resolver = ProvenanceResolver(session)
    with pytest.raises(NotFoundError):
        await resolver.resolve(987654)
    with pytest.raises(NotFoundError):
        await resolver.load_demand_line(LineRef.inbound(987654))
    with pytest.raises(NotFoundError):
        await resolver.load_demand_line(LineRef.container(987654, 0))


@pytest.mark.asyncio
async def test_demand_line_views(session: AsyncSession):
    sku = await seed_sku(session, "SKU-D", lpn_qty=24)
    line = await seed_inbound_line(session, sku, expected_qty=48, batch_number="  ")
    export = await seed_container(
        session,
        BookingDirection.EXPORT,
        [{"sku_id": sku.id, "required_qty": 30, "allocated_qty": 12, "lpn_qty": 6}],
    )
    resolver = ProvenanceResolver(session)

    inbound = await resolver.load_demand_line(LineRef.inbound(line.id))
    assert inbound.is_supply and inbound.expected_qty == 48
    assert inbound.packing_factor == 24
    assert inbound.batch_number is None

    ct = await resolver.load_demand_line(LineRef.container(export.id, 0))
    assert not ct.is_supply
    assert ct.expected_qty == 30 and ct.remaining_qty == 18
    assert ct.packing_factor == 6
    assert ct.job_id == export.container_detail_id and ct.booking_id == export.booking_id

    with pytest.raises(InvalidIndexError):
        await resolver.load_demand_line(LineRef.container(export.id, 3))


@pytest.mark.asyncio
async def test_entity_labels(session: AsyncSession):
    sku = await seed_sku(session, "SKU-L")
    sku.description = None
    cust = Customer(tenant_id=TENANT, customer_name="Delivery Co")
    session.add(cust)
    await session.flush()
    job = InboundJob(tenant_id=TENANT, warehouse_id=WH, job_code="IN-9", delivery_customer_id=cust.id)
    session.add(job)
    await session.flush()
    await session.refresh(job, ["delivery_customer"])

    assert entity_label("skus", sku).display_name == "SKU-L"
    assert entity_label("inbound-jobs", job).display_name == "Delivery Co"
    assert entity_label("inbound-jobs", job).code == "IN-9"
    with pytest.raises(UnknownCollectionError):
        entity_label("warehouses", job)


def test_parse_date_accepts_iso_strings_and_blanks():
    assert parse_date("2030-02-03") == date(2030, 2, 3)
    assert parse_date("2030-02-03T10:00:00Z") == date(2030, 2, 3)
    assert parse_date(date(2030, 2, 3)) == date(2030, 2, 3)
    assert parse_date("") is None and parse_date(None) is None


@pytest.mark.asyncio
async def test_demand_lines_load_parents_for_rows_already_in_the_session(session: AsyncSession):
    sku = await seed_sku(session, "SKU-M")
    line = await seed_inbound_line(session, sku, job_code="IN-MAP")
    alloc = await seed_container(
        session, BookingDirection.EXPORT, [{"sku_id": sku.id, "required_qty": 4}], booking_code="BK-MAP"
    )
    # 父单据对象只剩在会话里（helper 里的局部变量已释放），行对象仍在身份映射中
    gc.collect()
    resolver = ProvenanceResolver(session)

    inbound = await resolver.load_demand_line(LineRef.inbound(line.id))
    assert inbound.job_id == line.inbound_job_id and inbound.warehouse_id == WH

    export = await resolver.load_demand_line(LineRef.container(alloc.id, 0))
    assert export.job_id == alloc.container_detail_id
    assert export.booking_id == alloc.booking_id and export.tenant_id == TENANT


@pytest.mark.asyncio
async def test_async_label_loads_delivery_customer_on_demand(session: AsyncSession):
    cust = Customer(tenant_id=TENANT, customer_name="Late Loaded Co")
    session.add(cust)
    await session.flush()
    job = InboundJob(tenant_id=TENANT, warehouse_id=WH, job_code="IN-10", delivery_customer_id=cust.id)
    session.add(job)
    await session.flush()

    # 关系未加载时同步版本不回落，也不触发 IO
    assert entity_label("inbound-jobs", job).display_name is None
    assert (await ProvenanceResolver(session).label("inbound-jobs", job)).display_name == "Late Loaded Co"
