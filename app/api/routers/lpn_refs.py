# app/api/routers/lpn_refs.py
from __future__ import annotations

from typing import Optional

from app.api.problem import raise_422
from app.models.enums import DemandKind, JobKind
from app.services.pickup_service import JobRef
from app.services.provenance import LineRef

# 路径里的 kind 用短横线小写形式：/allocations/outbound-line/12
_LINE_KINDS = {
    "inbound-line": DemandKind.INBOUND_LINE,
    "outbound-line": DemandKind.OUTBOUND_LINE,
    "container-line": DemandKind.CONTAINER_LINE,
}

_JOB_KINDS = {
    "outbound-job": JobKind.OUTBOUND_JOB,
    "container-detail": JobKind.CONTAINER_DETAIL,
}


def line_ref(kind: str, line_id: int, index: Optional[int]) -> LineRef:
    k = _LINE_KINDS.get(kind.strip().lower())
    if k is None:
        raise_422("invalid_line_kind", f"未知的行类型：{kind}（可选 {', '.join(_LINE_KINDS)}）")
    if k == DemandKind.CONTAINER_LINE:
        if index is None:
            raise_422("missing_index", "container-line 必须带 ?index=")
        return LineRef.container(line_id, index)
    return LineRef(k, int(line_id))


def job_ref(kind: str, job_id: int) -> JobRef:
    k = _JOB_KINDS.get(kind.strip().lower())
    if k is None:
        raise_422("invalid_job_kind", f"未知的单据类型：{kind}（可选 {', '.join(_JOB_KINDS)}）")
    return JobRef(k, int(job_id))
