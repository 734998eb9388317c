"""Relational store access with bound-parameter SQL statements."""

from __future__ import annotations

import os
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Iterator, Mapping

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    url = os.getenv("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("server misconfiguration: DATABASE_URL missing")
    return create_engine(url, pool_pre_ping=True)


def fetch_all(sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
    with get_engine().connect() as conn:
        rows = conn.execute(text(sql), dict(params or {})).mappings().all()
    return [dict(row) for row in rows]


def fetch_one(sql: str, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
    rows = fetch_all(sql, params)
    return rows[0] if rows else None


def insert_returning_id(sql: str, params: Mapping[str, Any]) -> int:
    """Run an INSERT ... RETURNING <id> statement in its own transaction."""
    with get_engine().begin() as conn:
        row = conn.execute(text(sql), dict(params)).first()
    if row is None:
        raise RuntimeError("insert did not return an id")
    return int(row[0])


def execute(sql: str, params: Mapping[str, Any]) -> int:
    """Run a single write statement and return the affected row count."""
    with get_engine().begin() as conn:
        result = conn.execute(text(sql), dict(params))
    return result.rowcount


@contextmanager
def transaction() -> Iterator[Connection]:
    """Yield a connection whose statements commit together or not at all."""
    with get_engine().begin() as conn:
        yield conn
