"""Utilities to run Alembic migrations programmatically."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import NullPool

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sitback.errors import LegacySchemaError, SchemaNotInitializedError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
VERSION_TABLE = "alembic_version"
MANAGED_TABLES = ("tags", "todos", "todo_dependencies")


def build_config(db_path: Path) -> Config:
    """Alembic config pointing at the packaged migration scripts."""

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    # ConfigParser interpolation treats '%' specially.
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}".replace("%", "%%"))
    return config


def upgrade_head(db_path: Path) -> None:
    """Apply Alembic migrations up to head for the given SQLite database."""

    ensure_not_legacy(db_path)
    try:
        command.upgrade(build_config(db_path), "head")
    except OperationalError as error:
        if "already exists" not in str(error).lower():
            raise
        raise LegacySchemaError(db_path, _existing_managed_tables(db_path)) from error
    logger.info("Schema at %s upgraded to %s", db_path, head_revision())


def head_revision() -> str | None:
    script = ScriptDirectory(str(MIGRATIONS_DIR))
    return script.get_current_head()


def current_revision(db_path: Path) -> str | None:
    """Applied revision, or ``None`` when the database has no migration history."""

    if not db_path.exists():
        return None
    engine = create_engine(f"sqlite:///{db_path}", poolclass=NullPool)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()


def ensure_not_legacy(db_path: Path) -> None:
    """Refuse to migrate a database whose tables predate migration tracking."""

    if not db_path.exists():
        return
    existing = _existing_managed_tables(db_path)
    if existing and current_revision(db_path) is None:
        raise LegacySchemaError(db_path, existing)


def assert_schema_current(db_path: Path) -> None:
    """Raise when migrations were never applied or are behind head."""

    applied = current_revision(db_path)
    if applied is None:
        raise SchemaNotInitializedError(db_path)
    expected = head_revision()
    if applied != expected:
        raise SchemaNotInitializedError(
            db_path,
            detail=f"applied revision {applied}, expected {expected}",
        )


def schema_warning(db_path: Path) -> str | None:
    """Soft variant of ``assert_schema_current`` for status displays."""

    try:
        assert_schema_current(db_path)
    except SchemaNotInitializedError:
        return "database is not initialized. run schema initialization."
    return None


def _existing_managed_tables(db_path: Path) -> list[str]:
    engine = create_engine(f"sqlite:///{db_path}", poolclass=NullPool)
    try:
        names = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    return [name for name in MANAGED_TABLES if name in names]
