from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


def _engine_options():
    return {
        "pool_pre_ping": True,
    }


def create_warehouse_engine(dsn: str) -> Engine:
    return create_engine(dsn, **_engine_options())
