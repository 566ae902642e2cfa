from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import psycopg2

from ..config.loader import DatabaseConfig
from ..models.processing_result import FileCallback

"""Callback store: records that an upload has been fully submitted.

The row is written after every batch has gone downstream. ``store`` returns
True on success; the caller treats False, or any exception, as a failed
persistence step.

Connection settings resolve in this order: ``DATABASE_URL`` / ``PGDSN``, the
``dsn`` from config, then ``PGHOST``/``PGPORT``/``PGUSER``/``PGPASSWORD``/
``PGDATABASE`` falling back to the config's ``database`` section.
"""

__all__ = [
    "CallbackStore",
    "PostgresCallbackStore",
    "InMemoryCallbackStore",
    "StoredCallback",
    "resolve_dsn",
    "db_connection",
]

logger = logging.getLogger(__name__)

TABLE = "ers_callback_data"

_CREATE_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    reference TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    download_url TEXT NOT NULL,
    total_rows INTEGER NOT NULL,
    stored_at TIMESTAMPTZ NOT NULL
)
"""

_UPSERT_SQL = f"""
INSERT INTO {TABLE} (reference, name, download_url, total_rows, stored_at)
VALUES (%s, %s, %s, %s, %s)
ON CONFLICT (reference) DO UPDATE SET
    name = EXCLUDED.name,
    download_url = EXCLUDED.download_url,
    total_rows = EXCLUDED.total_rows,
    stored_at = EXCLUDED.stored_at
"""


class CallbackStore(Protocol):
    def store(self, callback: FileCallback, total_rows: int) -> bool: ...


@dataclass(frozen=True)
class StoredCallback:
    reference: str
    name: str
    download_url: str
    total_rows: int
    stored_at: datetime


def resolve_dsn(db_cfg: DatabaseConfig, env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    dsn = env.get("DATABASE_URL") or env.get("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = env.get("PGHOST", db_cfg.host or "localhost")
    port = env.get("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = env.get("PGUSER", db_cfg.user or "postgres")
    password = env.get("PGPASSWORD", db_cfg.password or "")
    database = env.get("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_connection(dsn: str) -> Iterator[Any]:  # pragma: no cover (thin wrapper; tested via integration)
    """Yield an open psycopg2 connection and close it afterwards."""
    conn = psycopg2.connect(dsn)
    try:
        yield conn
    finally:
        conn.close()


class PostgresCallbackStore:
    """Upsert completion rows into ``ers_callback_data``.

    ``conn`` is a psycopg2 connection owned by the caller. Each ``store`` call
    is its own transaction, and calls are serialised because a psycopg2
    connection must not run two transactions at once.
    """

    def __init__(self, conn: Any, create_table: bool = True) -> None:
        self.conn = conn
        self._lock = threading.Lock()
        if create_table:
            with self.conn, self.conn.cursor() as cur:
                cur.execute(_CREATE_SQL)

    def store(self, callback: FileCallback, total_rows: int) -> bool:
        stored_at = datetime.now(UTC)
        with self._lock:
            try:
                with self.conn, self.conn.cursor() as cur:
                    cur.execute(
                        _UPSERT_SQL,
                        (callback.reference, callback.name, callback.download_url, total_rows, stored_at),
                    )
            except psycopg2.Error as e:
                logger.error(f"callback store failed for {callback.reference}: {e}")
                return False
        logger.debug(f"stored callback {callback.reference} total_rows={total_rows}")
        return True


class InMemoryCallbackStore:
    """Mock mode store used when no database is reachable."""

    def __init__(self) -> None:
        self.records: dict[str, StoredCallback] = {}
        self._lock = threading.Lock()

    def store(self, callback: FileCallback, total_rows: int) -> bool:
        with self._lock:
            self.records[callback.reference] = StoredCallback(
                callback.reference, callback.name, callback.download_url, total_rows, datetime.now(UTC)
            )
        return True
