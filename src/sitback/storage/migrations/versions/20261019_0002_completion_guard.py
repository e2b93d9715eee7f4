"""Reject completing a todo while any predecessor is incomplete."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        sa.text(
            """
            CREATE TRIGGER IF NOT EXISTS todos_completion_guard
            BEFORE UPDATE OF status ON todos
            FOR EACH ROW
            WHEN NEW.status = 'completed'
              AND OLD.status != 'completed'
              AND EXISTS (
                SELECT 1
                FROM todo_dependencies d
                JOIN todos p ON p.id = d.predecessor_id
                WHERE d.successor_id = NEW.id
                  AND p.status != 'completed'
              )
            BEGIN
                SELECT RAISE(ABORT, 'predecessor_not_completed');
            END
            """,
        ),
    )


def downgrade() -> None:
    op.execute(sa.text("DROP TRIGGER IF EXISTS todos_completion_guard"))
