# app/metrics.py
from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)

# 业务指标：发号 / 上架 / 认领 / 拣货 / 发运
LPNS_ISSUED = Counter("lpn_issued_total", "LPN numbers issued")
UNITS_PUT_AWAY = Counter("lpn_units_put_away_total", "Units created by put-away", ["kind"])
UNITS_CLAIMED = Counter("lpn_units_claimed_total", "Units claimed by demand lines", ["kind", "mode"])
UNIT_FAILURES = Counter("lpn_unit_failures_total", "Per-unit failures", ["op", "code"])
PICKUPS = Counter("lpn_pickups_total", "Pickup records written", ["kind"])
UNITS_DISPATCHED = Counter("lpn_units_dispatched_total", "Units dispatched", ["job_kind"])
SEARCH_LATENCY = Histogram("lpn_inventory_search_seconds", "Inventory search latency (seconds)")

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics() -> Response:
    """
    单进程直接导出默认 REGISTRY；
    设置了 PROMETHEUS_MULTIPROC_DIR 时用临时 CollectorRegistry 合并各进程分片。
    """
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        payload = generate_latest(registry)
    else:
        payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
