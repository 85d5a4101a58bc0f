# app/api/__init__.py
"""
API package bootstrap.

- 这里不做任何重导出
- 路由聚合由 `app/api/router.py` 管理，错误映射见 `app/api/errors.py`
"""

__all__ = []
