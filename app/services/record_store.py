# app/services/record_store.py
"""
RecordStore：按集合名访问 ORM 表的薄封装。

- 集合显式注册（COLLECTIONS），未知集合直接抛 UnknownCollectionError
- compare_and_set 走表级条件 UPDATE（WHERE id = :id AND <expected>），
  rowcount == 1 才算成功；并发下同一行只有一个调用方能赢
- 不 commit：事务边界由调用方（路由 / 测试）控制
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.db.base import Base
from app.models.container import ContainerBooking, ContainerDetail, ContainerStockAllocation
from app.models.customer import Customer
from app.models.inbound import InboundJob, InboundProductLine
from app.models.lpn_sequence import LpnSequence
from app.models.outbound import OutboundJob, OutboundProductLine
from app.models.pickup_stock import PickupStock
from app.models.put_away_stock import PutAwayStock
from app.models.sku import Sku
from app.services.errors import NotFoundError, UnknownCollectionError

COLLECTIONS: Dict[str, Type[Base]] = {
    "put-away-stock": PutAwayStock,
    "pickup-stock": PickupStock,
    "skus": Sku,
    "customers": Customer,
    "inbound-jobs": InboundJob,
    "inbound-product-lines": InboundProductLine,
    "outbound-jobs": OutboundJob,
    "outbound-product-lines": OutboundProductLine,
    "container-bookings": ContainerBooking,
    "container-details": ContainerDetail,
    "container-stock-allocations": ContainerStockAllocation,
    "lpn-sequences": LpnSequence,
}


def model_for(collection: str) -> Type[Base]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise UnknownCollectionError(f"unknown collection: {collection!r}") from None


def _criteria(source: Any, filters: Mapping[str, Any], name: str) -> List[Any]:
    """source 是 ORM 类或 table.c；两者都按属性名取列"""
    out: List[Any] = []
    for field, value in filters.items():
        col = getattr(source, field, None)
        if col is None:
            raise ValueError(f"{name} has no field {field!r}")
        if value is None:
            out.append(col.is_(None))
        elif isinstance(value, (list, tuple, set, frozenset)):
            out.append(col.in_(list(value)))
        else:
            out.append(col == value)
    return out


class RecordStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(self, collection: str, id: Any) -> Optional[Any]:
        model = model_for(collection)
        return await self.session.get(model, id)

    async def find(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        limit: Optional[int] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> List[Any]:
        """等值过滤：None → IS NULL，list/tuple/set → IN"""
        model = model_for(collection)
        stmt = select(model).where(*_criteria(model, filters or {}, model.__name__))
        for field in order_by or ("id",):
            stmt = stmt.order_by(getattr(model, field))
        if limit is not None:
            stmt = stmt.limit(int(limit))
        rows = await self.session.execute(stmt)
        return list(rows.scalars().all())

    async def create(self, collection: str, data: Mapping[str, Any]) -> Any:
        model = model_for(collection)
        obj = model(**dict(data))
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def update(self, collection: str, id: Any, patch: Mapping[str, Any]) -> Any:
        obj = await self.find_by_id(collection, id)
        if obj is None:
            raise NotFoundError(f"{collection} #{id} not found")
        for field, value in patch.items():
            setattr(obj, field, value)
        await self.session.flush()
        return obj

    async def compare_and_set(
        self,
        collection: str,
        id: Any,
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> bool:
        # 表级 UPDATE：不走 ORM 同步，rowcount 可靠；成功后再把 patch 写回会话里的对象
        model = model_for(collection)
        table = model.__table__
        pk = list(table.primary_key.columns)[0]
        stmt = (
            update(table)
            .where(pk == id, *_criteria(table.c, expected, table.name))
            .values(**dict(patch))
        )
        await self.session.flush()
        result = await self.session.execute(stmt)
        ok = (result.rowcount or 0) == 1
        if ok:
            obj = self.session.identity_map.get(model.__mapper__.identity_key_from_primary_key([id]))
            if obj is not None:
                for field, value in patch.items():
                    set_committed_value(obj, field, value)
        return ok
