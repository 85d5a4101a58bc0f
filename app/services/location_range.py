# app/services/location_range.py
"""
库位区间过滤（字母数字自然序）：

    A-01-2 < A-01-10 < A-02-1 < B-01-1

数字段按整数比，字母段按忽略大小写的字符串比；数字段排在字母段之前。
"""

from __future__ import annotations

import re
from typing import Optional, Tuple, Union

_CHUNK = re.compile(r"(\d+)")

NaturalKey = Tuple[Tuple[int, Union[int, str]], ...]


def natural_key(location: str) -> NaturalKey:
    parts = []
    for chunk in _CHUNK.split((location or "").strip()):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk.upper()))
    return tuple(parts)


def in_location_range(location: Optional[str], start: Optional[str], end: Optional[str]) -> bool:
    """闭区间；start / end 任一为空表示该侧不设限"""
    if not start and not end:
        return True
    if not location:
        return False
    key = natural_key(location)
    if start and key < natural_key(start):
        return False
    if end and key > natural_key(end):
        return False
    return True
