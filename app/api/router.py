from __future__ import annotations

from fastapi import APIRouter

api_router = APIRouter()

from app.api.routers import (  # noqa: E402
    allocation,
    health,
    inventory,
    pickups,
    putaway,
)

api_router.include_router(health.router)

# 分配 / 上架 / 拣货发运
api_router.include_router(allocation.router)
api_router.include_router(putaway.router)
api_router.include_router(pickups.router)

# 库存查询（只读）
api_router.include_router(inventory.router)
