# app/api/routers/inventory.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.inventory import AggregatedRowOut, InventorySearchIn, InventorySearchOut
from app.services.inventory_search import InventorySearch, SearchFilters

router = APIRouter(prefix="/inventory", tags=["inventory"])

svc = InventorySearch()


@router.post("/search", response_model=InventorySearchOut)
async def search(
    payload: InventorySearchIn,
    session: AsyncSession = Depends(get_session),
) -> InventorySearchOut:
    filters = SearchFilters(**payload.model_dump(exclude={"tenant_id", "warehouse_id"}))
    outcome = await svc.search_page(
        session,
        tenant_id=payload.tenant_id,
        warehouse_id=payload.warehouse_id,
        filters=filters,
    )
    out = [AggregatedRowOut.model_validate(r) for r in outcome.rows]
    return InventorySearchOut(
        rows=out,
        group_count=len(out),
        total_qty=sum(r.total_qty for r in out),
        scanned=outcome.scanned,
        truncated=outcome.truncated,
    )
