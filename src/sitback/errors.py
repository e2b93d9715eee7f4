"""
Structured exceptions for the todo core.

Every failure carries a machine-readable ``error_code`` and a message
that names the offending id or path, so callers can report it verbatim.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class SitbackError(Exception):
    """Base exception for all sitback errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(SitbackError, ValueError):
    """Malformed caller input (path, date, enum, range)."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(
            message=message,
            error_code="validation_error",
            details={"field": field} if field else None,
        )
        self.field = field


class NotFoundError(SitbackError):
    """Referenced id or path does not exist."""

    def __init__(self, resource: str, resource_id: object) -> None:
        super().__init__(
            message=f"{resource} {resource_id} not found",
            error_code="not_found",
            details={"resource": resource, "id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(SitbackError):
    """Operation would break a structural invariant."""

    def __init__(
        self,
        message: str,
        error_code: str = "conflict",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class SelfDependencyError(ConflictError):
    """Todo cannot depend on itself."""

    def __init__(self, todo_id: int) -> None:
        super().__init__(
            message=f"Todo {todo_id} cannot depend on itself",
            error_code="self_dependency",
            details={"todo_id": todo_id},
        )
        self.todo_id = todo_id


class CycleError(ConflictError):
    """Adding a dependency would create a cycle."""

    def __init__(self, successor_id: int, predecessor_id: int) -> None:
        super().__init__(
            message=(
                f"Dependency {predecessor_id} -> {successor_id} would create a cycle "
                "in the todo graph"
            ),
            error_code="cycle_detected",
            details={"successor_id": successor_id, "predecessor_id": predecessor_id},
        )
        self.successor_id = successor_id
        self.predecessor_id = predecessor_id


class TagCycleError(ConflictError):
    """Reparenting a tag under its own subtree."""

    def __init__(self, tag_id: int, parent_id: int) -> None:
        super().__init__(
            message=f"Tag {tag_id} cannot be moved under tag {parent_id}: it is in its subtree",
            error_code="tag_cycle",
            details={"tag_id": tag_id, "parent_id": parent_id},
        )
        self.tag_id = tag_id
        self.parent_id = parent_id


class DuplicateTagError(ConflictError):
    """A tag with the same name already exists under the same parent."""

    def __init__(self, name: str, parent_id: int | None) -> None:
        scope = "at root level" if parent_id is None else f"under tag {parent_id}"
        super().__init__(
            message=f"Tag {name!r} already exists {scope}",
            error_code="duplicate_tag",
            details={"name": name, "parent_id": parent_id},
        )
        self.name = name
        self.parent_id = parent_id


class PredecessorNotCompleteError(ConflictError):
    """Completing a todo that still has incomplete predecessors."""

    def __init__(self, todo_id: int, predecessor_ids: list[int] | None = None) -> None:
        pending = predecessor_ids or []
        suffix = f" (incomplete: {', '.join(str(i) for i in pending)})" if pending else ""
        super().__init__(
            message=f"Todo {todo_id} cannot be completed before its predecessors{suffix}",
            error_code="predecessor_not_completed",
            details={"todo_id": todo_id, "predecessor_ids": pending},
        )
        self.todo_id = todo_id
        self.predecessor_ids = pending


class NotClaimableError(ConflictError):
    """A specifically requested todo is not eligible for claiming."""

    def __init__(self, todo_id: int) -> None:
        super().__init__(
            message=f"Todo {todo_id} is not claimable",
            error_code="not_claimable",
            details={"todo_id": todo_id},
        )
        self.todo_id = todo_id


class SchemaNotInitializedError(SitbackError):
    """Database has no or outdated migration history."""

    def __init__(self, db_path: Path, detail: str = "") -> None:
        message = "Database is not initialized. Run schema initialization first."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(
            message=message,
            error_code="schema_not_initialized",
            details={"db_path": str(db_path)},
        )
        self.db_path = db_path


class LegacySchemaError(SitbackError):
    """Existing tables conflict with the migration history."""

    def __init__(self, db_path: Path, tables: list[str]) -> None:
        db_dir = db_path.resolve().parent
        message = "\n".join(
            [
                "Detected a legacy/partially-managed SQLite database that conflicts "
                "with schema migrations.",
                f"Database path: {db_path}",
                f"Conflicting tables: {', '.join(tables)}",
                "Reason: migration history does not match the existing tables, so "
                "migrations would re-run early CREATE TABLE statements.",
                "",
                "Recommended recovery:",
                f'1) mv "{db_path}" "{db_path}.legacy-$(date +%Y%m%d%H%M%S)"',
                "2) Re-run schema initialization to create a fresh database",
                "",
                "If you must keep existing data, migrate it manually into the new schema first.",
            ],
        )
        super().__init__(
            message=message,
            error_code="legacy_schema",
            details={"db_path": str(db_path), "db_dir": str(db_dir), "tables": tables},
        )
        self.db_path = db_path
        self.tables = tables
