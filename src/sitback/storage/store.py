"""Explicit store handle owning the SQLite engine and transaction scopes."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlmodel import Session

from sitback.storage.alembic_runner import assert_schema_current, schema_warning, upgrade_head
from sitback.storage.common import WRITE_BEGIN_MODE, build_sqlite_engine

DEFAULT_BUSY_TIMEOUT_MS = 5_000


class TodoStore:
    """Persistence handle backed by SQLModel + SQLite.

    Read sessions run in a deferred transaction and see one consistent
    snapshot. Write transactions begin with ``BEGIN IMMEDIATE`` so every
    precondition checked inside them holds until commit; concurrent writers
    wait on the busy timeout instead of failing.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        self._write_engine = self.engine.execution_options(sqlite_begin=WRITE_BEGIN_MODE)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    def assert_initialized(self) -> None:
        assert_schema_current(self.db_path)

    def initialization_warning(self) -> str | None:
        return schema_warning(self.db_path)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Read-only session; nothing is committed."""

        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Write session committed on success and rolled back on any error."""

        with Session(self._write_engine, expire_on_commit=False) as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
