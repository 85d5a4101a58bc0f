# app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.errors import lpn_core_error_handler
from app.api.problem import make_problem
from app.api.router import api_router
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.db.base import Base, init_models
from app.db.session import close_engines, get_engine
from app.metrics import router as metrics_router
from app.services.errors import LpnCoreError

settings = get_settings()
setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
logger = logging.getLogger("lpnwms")

init_models()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # dev：本地 sqlite 直接建表；其它环境走 alembic upgrade
    if settings.ENV == "dev":
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("dev schema ensured (create_all)")
    yield
    await close_engines()


app = FastAPI(
    title="LPN-WMS",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def _unhandled_exc(_req: Request, exc: Exception):
    logger.exception("UNHANDLED_EXC: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": make_problem(status_code=500, error_code="INTERNAL_ERROR", message="internal error")},
    )


@app.exception_handler(RequestValidationError)
async def _validation_exc(_req: Request, exc: RequestValidationError):
    safe = [
        {"type": "validation", "path": ".".join(str(p) for p in e.get("loc", ())), "reason": e.get("msg", "")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "detail": make_problem(
                status_code=422,
                error_code="request_validation_error",
                message="请求参数不合法",
                details=safe,
            )
        },
    )


@app.exception_handler(HTTPException)
async def _http_exc(_req: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.add_exception_handler(LpnCoreError, lpn_core_error_handler)

app.include_router(api_router)
app.include_router(metrics_router)


@app.get("/")
async def root():
    return {"name": "LPN-WMS", "version": "0.1.0"}
