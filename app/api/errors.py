# app/api/errors.py
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.api.problem import make_problem
from app.services.errors import ConflictError, InvalidStateError, LpnCoreError, NotFoundError

log = logging.getLogger("lpnwms.api")


def status_for(exc: LpnCoreError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (ConflictError, InvalidStateError)):
        return 409
    return 422


async def lpn_core_error_handler(req: Request, exc: LpnCoreError) -> JSONResponse:
    status = status_for(exc)
    log.info("%s %s -> %d %s: %s", req.method, req.url.path, status, exc.code, exc.message)
    return JSONResponse(
        status_code=status,
        content={
            "detail": make_problem(
                status_code=status,
                error_code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        },
    )
