# tests/services/test_record_store.py
from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.lpn_seed import seed_inbound_line, seed_sku, seed_units

from app.services.errors import NotFoundError, UnknownCollectionError
from app.services.record_store import RecordStore, model_for

pytestmark = pytest.mark.grp_store


def test_unknown_collection_is_rejected():
    with pytest.raises(UnknownCollectionError):
        model_for("pallets")


@pytest.mark.asyncio
async def test_find_supports_null_and_in_filters(session: AsyncSession):
    sku = await seed_sku(session, "SKU-R")
    line = await seed_inbound_line(session, sku)
    a, b, c = await seed_units(session, line, [1, 2, 3])
    store = RecordStore(session)

    got = await store.find("put-away-stock", {"lpn_number": [a.lpn_number, c.lpn_number]})
    assert [u.id for u in got] == [a.id, c.id]

    unclaimed = await store.find("put-away-stock", {"claim_kind": None}, order_by=["hu_qty"], limit=2)
    assert [u.hu_qty for u in unclaimed] == [1, 2]

    with pytest.raises(ValueError):
        await store.find("put-away-stock", {"no_such_field": 1})


@pytest.mark.asyncio
async def test_compare_and_set_only_applies_when_expected_matches(session: AsyncSession):
    sku = await seed_sku(session, "SKU-S")
    line = await seed_inbound_line(session, sku)
    (unit,) = await seed_units(session, line, [10])
    store = RecordStore(session)

    assert not await store.compare_and_set(
        "put-away-stock", unit.id, {"allocation_status": "allocated"}, {"location": "Z-9"}
    )
    assert unit.location == "A-01-1"

    assert await store.compare_and_set(
        "put-away-stock", unit.id, {"allocation_status": "available"}, {"location": "Z-9"}
    )
    assert unit.location == "Z-9"
    reread = await store.find("put-away-stock", {"id": unit.id})
    assert reread[0].location == "Z-9"


@pytest.mark.asyncio
async def test_update_missing_row_raises(session: AsyncSession):
    with pytest.raises(NotFoundError):
        await RecordStore(session).update("skus", 31337, {"description": "x"})
