# app/db/base.py
from __future__ import annotations

import importlib
import logging
from typing import Iterable, List, Set

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("lpnwms.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False  # 防重复初始化

# 关系目标类以字符串引用，必须全部导入后再 configure_mappers()
MODEL_MODULES = [
    "app.models.sku",
    "app.models.customer",
    "app.models.inbound",
    "app.models.outbound",
    "app.models.container",
    "app.models.put_away_stock",
    "app.models.pickup_stock",
    "app.models.lpn_sequence",
]


def init_models(*, exclude: Iterable[str] | None = None, force: bool = False) -> None:
    """
    集中导入模型 + 固化关系映射。
    导入失败直接抛出：缺表比静默跳过更容易定位。
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        log.debug("init_models() called again; already initialized, skipping.")
        return

    ex: Set[str] = set(exclude or [])
    loaded: List[str] = []
    for mod in MODEL_MODULES:
        if mod in ex:
            continue
        importlib.import_module(mod)
        loaded.append(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(loaded))
