# tests/unit/test_lpn_refs.py
import pytest
from fastapi import HTTPException

from app.api.routers.lpn_refs import job_ref, line_ref
from app.models.enums import DemandKind, JobKind
from app.services.errors import UnitFailure
from app.services.provenance import LineRef


def test_line_ref_parses_path_kinds():
    assert line_ref("outbound-line", 7, None) == LineRef.outbound(7)
    assert line_ref("Inbound-Line", 3, None) == LineRef(DemandKind.INBOUND_LINE, 3)
    assert line_ref("container-line", 5, 2) == LineRef.container(5, 2)
    assert LineRef.container(5, 2).label() == "CONTAINER_LINE#5[2]"


def test_container_line_requires_index():
    with pytest.raises(HTTPException) as ei:
        line_ref("container-line", 5, None)
    assert ei.value.status_code == 422
    assert ei.value.detail["error_code"] == "missing_index"


def test_unknown_kinds_are_rejected():
    with pytest.raises(HTTPException):
        line_ref("pallet", 1, None)
    with pytest.raises(HTTPException):
        job_ref("booking", 1)
    assert job_ref("container-detail", 9).kind == JobKind.CONTAINER_DETAIL


def test_unit_failure_to_dict():
    f = UnitFailure("LPN00000001", "CONFLICT", "already allocated elsewhere")
    assert f.to_dict() == {
        "type": "unit",
        "lpn_number": "LPN00000001",
        "code": "CONFLICT",
        "reason": "already allocated elsewhere",
    }
