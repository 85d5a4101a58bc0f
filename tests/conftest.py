# tests/conftest.py
from __future__ import annotations

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# ============================================================
# ★ 在 import app.main 之前固定测试环境：不走 dev create_all
# ============================================================
os.environ["ENV"] = "test"
os.environ.setdefault("LOG_LEVEL", "INFO")

from app.db.base import Base, init_models  # noqa: E402
from app.db.session import get_session  # noqa: E402
from app.main import app  # noqa: E402

init_models()


# =========================================
# 每用例独立 sqlite 文件库（NullPool，避免跨 loop）
#   并发用例需要多连接，所以不用 :memory:
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = f"sqlite+aiosqlite:///{tmp_path / 'lpnwms-test.db'}"
    engine = create_async_engine(
        url,
        poolclass=NullPool,
        connect_args={"timeout": 15},
        future=True,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    标准 Session（用例结束自动 commit / 出错 rollback）
    """
    async with async_session_maker() as sess:
        try:
            yield sess
            if sess.in_transaction():
                await sess.commit()
        except Exception:
            if sess.in_transaction():
                await sess.rollback()
            raise


# =========================================
# HTTP 客户端：ASGITransport + 覆盖 get_session
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(async_session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _override() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as sess:
            yield sess

    app.dependency_overrides[get_session] = _override
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_session, None)
