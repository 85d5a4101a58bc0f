# app/services/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


class LpnCoreError(Exception):
    """LPN 核心服务异常基类：code 用于 HTTP 层映射 error_code"""

    code = "LPN_CORE_ERROR"

    def __init__(self, message: str, *, details: Optional[Sequence[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: List[Dict[str, Any]] = list(details or [])


class NotFoundError(LpnCoreError):
    code = "NOT_FOUND"


class ConflictError(LpnCoreError):
    code = "CONFLICT"


class MismatchError(LpnCoreError):
    code = "MISMATCH"


class InsufficientSupplyError(LpnCoreError):
    code = "INSUFFICIENT_SUPPLY"


class InvalidIndexError(LpnCoreError):
    code = "INVALID_INDEX"


class NoLocationProvidedError(LpnCoreError):
    code = "NO_LOCATION_PROVIDED"


class NothingToPickError(LpnCoreError):
    code = "NOTHING_TO_PICK"


class InvalidStateError(LpnCoreError):
    code = "INVALID_STATE"


class UnknownCollectionError(LpnCoreError):
    code = "UNKNOWN_COLLECTION"


@dataclass(frozen=True)
class UnitFailure:
    """单个 LPN 的失败原因（不中断整批）"""

    lpn_number: Optional[str]
    code: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "unit", "lpn_number": self.lpn_number, "code": self.code, "reason": self.reason}


# 单元级失败代码
UNIT_NOT_FOUND = NotFoundError.code
UNIT_CONFLICT = ConflictError.code
UNIT_MISMATCH = MismatchError.code
LINE_INSUFFICIENT_SUPPLY = InsufficientSupplyError.code

__all__ = [
    "LpnCoreError",
    "NotFoundError",
    "ConflictError",
    "MismatchError",
    "InsufficientSupplyError",
    "InvalidIndexError",
    "NoLocationProvidedError",
    "NothingToPickError",
    "InvalidStateError",
    "UnknownCollectionError",
    "UnitFailure",
    "UNIT_NOT_FOUND",
    "UNIT_CONFLICT",
    "UNIT_MISMATCH",
    "LINE_INSUFFICIENT_SUPPLY",
]
