"""Initial tags, todos and todo dependency schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.CheckConstraint("name = lower(name)", name="tags_name_lowercase_check"),
        sa.CheckConstraint("length(name) > 0", name="tags_name_not_empty_check"),
        sa.CheckConstraint(
            "name NOT GLOB '*[^a-z0-9]*'",
            name="tags_name_alphanumeric_check",
        ),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["tags.id"],
            name="tags_parent_fk",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "tags_parent_name_unique",
        "tags",
        ["parent_id", "name"],
        unique=True,
    )
    op.create_index(
        "tags_root_name_unique",
        "tags",
        ["name"],
        unique=True,
        sqlite_where=sa.text("parent_id IS NULL"),
    )

    op.create_table(
        "todos",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tag_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="todo"),
        sa.Column("assignee", sa.String(), nullable=True),
        sa.Column("assignee_lease", sa.String(), nullable=True),
        sa.Column("work_notes", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("due_date", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.String(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.String(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.CheckConstraint(
            "status IN ('todo', 'in_progress', 'completed', 'cancelled')",
            name="todos_status_check",
        ),
        sa.CheckConstraint(
            "priority IS NULL OR (priority >= 1 AND priority <= 5)",
            name="todos_priority_check",
        ),
        sa.CheckConstraint(
            "length(trim(description)) > 0",
            name="todos_description_not_empty_check",
        ),
        sa.ForeignKeyConstraint(
            ["tag_id"],
            ["tags.id"],
            name="todos_tag_fk",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_todos_tag_id", "todos", ["tag_id"])
    op.create_index("ix_todos_status", "todos", ["status"])

    op.create_table(
        "todo_dependencies",
        sa.Column("successor_id", sa.Integer(), nullable=False),
        sa.Column("predecessor_id", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "successor_id != predecessor_id",
            name="todo_dependencies_not_self_check",
        ),
        sa.ForeignKeyConstraint(
            ["successor_id"],
            ["todos.id"],
            name="todo_dependencies_successor_fk",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["predecessor_id"],
            ["todos.id"],
            name="todo_dependencies_predecessor_fk",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint(
            "successor_id",
            "predecessor_id",
            name="todo_dependencies_pk",
        ),
    )
    op.create_index(
        "ix_todo_dependencies_predecessor_id",
        "todo_dependencies",
        ["predecessor_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_todo_dependencies_predecessor_id", table_name="todo_dependencies")
    op.drop_table("todo_dependencies")
    op.drop_index("ix_todos_status", table_name="todos")
    op.drop_index("ix_todos_tag_id", table_name="todos")
    op.drop_table("todos")
    op.drop_index("tags_root_name_unique", table_name="tags")
    op.drop_index("tags_parent_name_unique", table_name="tags")
    op.drop_table("tags")
