# tests/alembic/test_lpn_migration.py
from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from app.db.base import Base, init_models

pytestmark = pytest.mark.contract

ROOT = Path(__file__).resolve().parents[2]


def _config() -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return cfg


def test_upgrade_head_matches_models_and_downgrades_cleanly(tmp_path, monkeypatch):
    """
    迁移合约：
    1. upgrade head 后，表集合与 ORM 元数据一致（另加 alembic_version）
    2. put_away_stock 上 LPN 唯一约束存在
    3. downgrade base 后只剩 alembic_version
    """
    init_models()
    url = f"sqlite:///{tmp_path / 'migrate.db'}"
    monkeypatch.setenv("LPNWMS_TEST_DATABASE_URL", url)
    cfg = _config()

    command.upgrade(cfg, "head")
    engine = create_engine(url)
    try:
        insp = inspect(engine)
        tables = set(insp.get_table_names())
        assert tables == set(Base.metadata.tables) | {"alembic_version"}

        uniques = {u["name"] for u in insp.get_unique_constraints("put_away_stock")}
        assert "uq_put_away_stock_lpn_number" in uniques

        command.downgrade(cfg, "base")
        assert set(inspect(engine).get_table_names()) == {"alembic_version"}
    finally:
        engine.dispose()
