"""SQLModel ORM tables for the todo store.

The schema itself is owned by the Alembic migrations; the table arguments
here mirror them so ORM metadata and the database agree.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Text,
    text,
)
from sqlmodel import Field, SQLModel

FAR_FUTURE_DATE = "9999-12-31"


class Tag(SQLModel, table=True):
    __tablename__ = "tags"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint("name = lower(name)", name="tags_name_lowercase_check"),
        CheckConstraint("length(name) > 0", name="tags_name_not_empty_check"),
        CheckConstraint("name NOT GLOB '*[^a-z0-9]*'", name="tags_name_alphanumeric_check"),
        Index("tags_parent_name_unique", "parent_id", "name", unique=True),
        Index(
            "tags_root_name_unique",
            "name",
            unique=True,
            sqlite_where=text("parent_id IS NULL"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    name: str
    parent_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer,
            ForeignKey("tags.id", ondelete="CASCADE"),
            nullable=True,
        ),
    )


class Todo(SQLModel, table=True):
    __tablename__ = "todos"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint(
            "status IN ('todo', 'in_progress', 'completed', 'cancelled')",
            name="todos_status_check",
        ),
        CheckConstraint(
            "priority IS NULL OR (priority >= 1 AND priority <= 5)",
            name="todos_priority_check",
        ),
        CheckConstraint("length(trim(description)) > 0", name="todos_description_not_empty_check"),
    )

    id: int | None = Field(default=None, primary_key=True)
    description: str = Field(sa_column=Column(Text, nullable=False))
    tag_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer,
            ForeignKey("tags.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    status: str = Field(default="todo", index=True)
    assignee: str | None = None
    assignee_lease: str | None = None
    work_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    priority: int | None = None
    due_date: str | None = None
    created_at: str
    updated_at: str


class TodoDependency(SQLModel, table=True):
    __tablename__ = "todo_dependencies"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint(
            "successor_id != predecessor_id",
            name="todo_dependencies_not_self_check",
        ),
    )

    successor_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("todos.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    predecessor_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("todos.id", ondelete="CASCADE"),
            primary_key=True,
            index=True,
        ),
    )
