"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from sitback.storage.store import TodoStore
from sitback.tracker import TaskTracker


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "sitback.db"


@pytest.fixture()
def tracker(db_path: Path) -> Iterator[TaskTracker]:
    """Tracker over a freshly migrated database file."""
    store = TodoStore(db_path)
    store.init_schema()
    tracker = TaskTracker(store)
    yield tracker
    tracker.close()
