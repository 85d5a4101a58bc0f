# tests/helpers/lpn_seed.py
"""
测试造数：SKU / 入库行 / 出库行 / 柜，以及"直接落库"的 LPN。

约定：默认 tenant=1 / warehouse=1；所有 helper 只 flush 不 commit，
事务由用例（或 session fixture 收尾）控制。
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.container import ContainerBooking, ContainerDetail, ContainerStockAllocation
from app.models.enums import AllocationStatus, BookingDirection, ProvenanceKind
from app.models.inbound import InboundJob, InboundProductLine
from app.models.outbound import OutboundJob, OutboundProductLine
from app.models.put_away_stock import PutAwayStock
from app.models.sku import Sku
from app.services.lpn_generator import LpnGenerator

TENANT = 1
WH = 1


async def seed_sku(
    session: AsyncSession,
    code: str = "SKU-A",
    *,
    description: Optional[str] = None,
    lpn_qty: Optional[int] = 10,
    expiry_date: Optional[date] = None,
    attribute1: Optional[str] = None,
    attribute2: Optional[str] = None,
    tenant_id: int = TENANT,
) -> Sku:
    sku = Sku(
        tenant_id=tenant_id,
        sku_code=code,
        description=description or f"{code} desc",
        lpn_qty=lpn_qty,
        expiry_date=expiry_date,
        attribute1=attribute1,
        attribute2=attribute2,
    )
    session.add(sku)
    await session.flush()
    return sku


async def seed_inbound_line(
    session: AsyncSession,
    sku: Sku,
    *,
    expected_qty: int = 50,
    batch_number: Optional[str] = "B1",
    lpn_qty: Optional[int] = None,
    expiry_date: Optional[date] = None,
    attribute1: Optional[str] = None,
    job: Optional[InboundJob] = None,
    job_code: str = "IN-0001",
    customer_name: Optional[str] = "ACME",
    customer_ref: Optional[str] = None,
    container_number: Optional[str] = None,
) -> InboundProductLine:
    if job is None:
        job = InboundJob(
            tenant_id=sku.tenant_id,
            warehouse_id=WH,
            job_code=job_code,
            customer_name=customer_name,
            delivery_customer_reference_number=customer_ref,
            container_number=container_number,
        )
        session.add(job)
        await session.flush()
    line = InboundProductLine(
        inbound_job_id=job.id,
        sku_id=sku.id,
        batch_number=batch_number,
        lpn_qty=lpn_qty,
        expected_qty=expected_qty,
        expiry_date=expiry_date,
        attribute1=attribute1,
    )
    session.add(line)
    await session.flush()
    return line


async def seed_outbound_job(
    session: AsyncSession,
    *,
    job_code: str = "OUT-0001",
    customer_name: Optional[str] = "ACME",
) -> OutboundJob:
    job = OutboundJob(tenant_id=TENANT, warehouse_id=WH, job_code=job_code, customer_name=customer_name)
    session.add(job)
    await session.flush()
    return job


async def seed_outbound_line(
    session: AsyncSession,
    sku: Sku,
    *,
    required_qty: int = 20,
    batch_number: Optional[str] = "B1",
    job: Optional[OutboundJob] = None,
    job_code: str = "OUT-0001",
) -> OutboundProductLine:
    if job is None:
        job = await seed_outbound_job(session, job_code=job_code)
    line = OutboundProductLine(
        outbound_job_id=job.id,
        sku_id=sku.id,
        batch_number=batch_number,
        required_qty=required_qty,
    )
    session.add(line)
    await session.flush()
    return line


async def seed_container(
    session: AsyncSession,
    direction: BookingDirection,
    product_lines: Sequence[Dict[str, Any]],
    *,
    booking_code: str = "BK-0001",
    container_number: str = "MSCU1234567",
    customer_name: Optional[str] = "Oceanic",
    customer_reference: Optional[str] = None,
) -> ContainerStockAllocation:
    booking = ContainerBooking(
        tenant_id=TENANT,
        direction=direction.value,
        booking_code=booking_code,
        customer_name=customer_name,
        customer_reference=customer_reference,
    )
    session.add(booking)
    await session.flush()
    detail = ContainerDetail(booking_id=booking.id, warehouse_id=WH, container_number=container_number)
    session.add(detail)
    await session.flush()
    alloc = ContainerStockAllocation(
        container_detail_id=detail.id,
        booking_id=booking.id,
        product_lines=[dict(p) for p in product_lines],
    )
    session.add(alloc)
    await session.flush()
    return alloc


async def seed_units(
    session: AsyncSession,
    inbound_line: InboundProductLine,
    quantities: Sequence[int],
    *,
    location: str = "A-01-1",
) -> List[PutAwayStock]:
    """绕过上架引擎直接落 LPN（数量可任意，便于构造分配场景）"""
    numbers = await LpnGenerator().generate(session, len(quantities))
    units: List[PutAwayStock] = []
    for lpn, qty in zip(numbers, quantities):
        unit = PutAwayStock(
            lpn_number=lpn,
            tenant_id=TENANT,
            warehouse_id=WH,
            location=location,
            sku_id=inbound_line.sku_id,
            hu_qty=qty,
            provenance_kind=ProvenanceKind.INBOUND_LINE.value,
            inbound_product_line_id=inbound_line.id,
            inbound_job_id=inbound_line.inbound_job_id,
            allocation_status=AllocationStatus.AVAILABLE.value,
        )
        session.add(unit)
        units.append(unit)
    await session.flush()
    return units
