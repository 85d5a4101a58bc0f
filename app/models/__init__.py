# app/models/__init__.py
"""
统一导出 ORM 模型。
"""

from importlib import import_module


def _export(module_name: str, class_name: str) -> None:
    module = import_module(module_name)
    globals()[class_name] = getattr(module, class_name)


MODEL_SPECS = [
    # -------- 主数据 --------
    ("app.models.sku", "Sku"),
    ("app.models.customer", "Customer"),
    # -------- 入库 / 出库作业 --------
    ("app.models.inbound", "InboundJob"),
    ("app.models.inbound", "InboundProductLine"),
    ("app.models.outbound", "OutboundJob"),
    ("app.models.outbound", "OutboundProductLine"),
    # -------- 柜 --------
    ("app.models.container", "ContainerBooking"),
    ("app.models.container", "ContainerDetail"),
    ("app.models.container", "ContainerStockAllocation"),
    # -------- LPN / 拣货 --------
    ("app.models.put_away_stock", "PutAwayStock"),
    ("app.models.pickup_stock", "PickupStock"),
    ("app.models.lpn_sequence", "LpnSequence"),
]

for _mod, _cls in MODEL_SPECS:
    _export(_mod, _cls)

__all__ = [cls for _, cls in MODEL_SPECS]
