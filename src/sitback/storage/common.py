"""Common helpers for the SQLite store."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
WRITE_BEGIN_MODE = "IMMEDIATE"


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp in the fixed-width ``YYYY-MM-DD HH:MM:SS`` UTC form."""

    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime(TIMESTAMP_FORMAT)


def now_timestamp() -> str:
    return format_timestamp(utc_now())


def lease_deadline(*, minutes: int, now: datetime | None = None) -> str:
    """Lease expiry timestamp ``minutes`` after ``now``."""

    return format_timestamp((now or utc_now()) + timedelta(minutes=minutes))


def build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int) -> Engine:
    """Build SQLAlchemy engine with consistent SQLite policy.

    The pysqlite driver's implicit transaction handling is disabled so that
    SQLAlchemy emits ``BEGIN`` itself. Engines derived with
    ``execution_options(sqlite_begin="IMMEDIATE")`` take the write lock when
    the transaction starts instead of at the first write.
    """

    db_url = f"sqlite:///{db_path}"
    engine = create_engine(
        db_url,
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )

    def _on_connect(dbapi_connection: sqlite3.Connection, _: object) -> None:
        _apply_sqlite_pragmas(dbapi_connection, busy_timeout_ms=busy_timeout_ms)
        dbapi_connection.isolation_level = None

    event.listen(engine, "connect", _on_connect)
    event.listen(engine, "begin", _begin_transaction)
    return engine


def connect_sqlite_with_policy(*, db_path: Path, busy_timeout_ms: int) -> sqlite3.Connection:
    """Create sqlite3 connection with the same policy as SQLAlchemy engine."""

    connection = sqlite3.connect(db_path)
    _apply_sqlite_pragmas(connection, busy_timeout_ms=busy_timeout_ms)
    connection.row_factory = sqlite3.Row
    return connection


def _begin_transaction(connection: Connection) -> None:
    mode = connection.get_execution_options().get("sqlite_begin")
    if mode == WRITE_BEGIN_MODE:
        connection.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        connection.exec_driver_sql("BEGIN")


def _apply_sqlite_pragmas(dbapi_connection: sqlite3.Connection, *, busy_timeout_ms: int) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute("PRAGMA synchronous = NORMAL")
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()
