"""Todo dependency graph: edges, blocked state and cycle prevention."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.orm import aliased
from sqlmodel import Session, col, select

from sitback.errors import (
    CycleError,
    NotFoundError,
    PredecessorNotCompleteError,
    SelfDependencyError,
)
from sitback.models import TodoStatus
from sitback.storage.sqlmodel_models import Todo, TodoDependency

logger = logging.getLogger(__name__)


def blocked_expression(todo_id_column: Any) -> Any:
    """SQL predicate: the todo has at least one predecessor not yet completed."""

    predecessor = aliased(Todo, name="p")
    return (
        select(TodoDependency.successor_id)
        .join(predecessor, predecessor.id == col(TodoDependency.predecessor_id))
        .where(
            col(TodoDependency.successor_id) == todo_id_column,
            predecessor.status != TodoStatus.COMPLETED.value,
        )
        .exists()
    )


class DependencyGraph:
    """Dependency edge operations bound to one session.

    An edge ``(successor_id, predecessor_id)`` means the successor cannot be
    completed before the predecessor. Every insert keeps the graph acyclic.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def is_blocked(self, todo_id: int) -> bool:
        return bool(self.incomplete_predecessor_ids(todo_id))

    def predecessor_ids(self, todo_id: int) -> list[int]:
        rows = self.session.exec(
            select(TodoDependency.predecessor_id).where(TodoDependency.successor_id == todo_id),
        ).all()
        return sorted(rows)

    def incomplete_predecessor_ids(self, todo_id: int) -> list[int]:
        rows = self.session.exec(
            select(TodoDependency.predecessor_id)
            .join(Todo, col(Todo.id) == col(TodoDependency.predecessor_id))
            .where(
                TodoDependency.successor_id == todo_id,
                col(Todo.status) != TodoStatus.COMPLETED.value,
            ),
        ).all()
        return sorted(rows)

    def edges(self) -> list[tuple[int, int]]:
        """All ``(successor_id, predecessor_id)`` pairs."""

        rows = self.session.exec(
            select(TodoDependency.successor_id, TodoDependency.predecessor_id).order_by(
                col(TodoDependency.successor_id),
                col(TodoDependency.predecessor_id),
            ),
        ).all()
        return [(successor, predecessor) for successor, predecessor in rows]

    def add_dependency(self, successor_id: int, predecessor_id: int) -> bool:
        """Insert one edge. Returns ``False`` when it already existed."""

        if successor_id == predecessor_id:
            raise SelfDependencyError(successor_id)
        self._require_todo(successor_id)
        self._require_todo(predecessor_id)
        if self.session.get(TodoDependency, (successor_id, predecessor_id)) is not None:
            return False
        if self._reaches(start_id=predecessor_id, target_id=successor_id):
            raise CycleError(successor_id, predecessor_id)

        self.session.add(TodoDependency(successor_id=successor_id, predecessor_id=predecessor_id))
        self.session.flush()
        logger.debug("Added dependency %s -> %s", predecessor_id, successor_id)
        return True

    def remove_dependency(self, successor_id: int, predecessor_id: int) -> bool:
        edge = self.session.get(TodoDependency, (successor_id, predecessor_id))
        if edge is None:
            return False
        self.session.delete(edge)
        self.session.flush()
        logger.debug("Removed dependency %s -> %s", predecessor_id, successor_id)
        return True

    def replace_predecessors(self, successor_id: int, predecessor_ids: Iterable[int]) -> list[int]:
        """Swap the whole incoming edge set of ``successor_id``.

        Old edges are removed first, so cycle checks see the graph without
        them. Any rejected edge aborts the enclosing transaction.
        """

        self._require_todo(successor_id)
        incoming = self.session.exec(
            select(TodoDependency).where(TodoDependency.successor_id == successor_id),
        ).all()
        for edge in incoming:
            self.session.delete(edge)
        self.session.flush()

        inserted: list[int] = []
        for predecessor_id in predecessor_ids:
            if predecessor_id in inserted:
                continue
            self.add_dependency(successor_id, predecessor_id)
            inserted.append(predecessor_id)
        return sorted(inserted)

    def ensure_can_complete(self, todo_id: int) -> None:
        pending = self.incomplete_predecessor_ids(todo_id)
        if pending:
            raise PredecessorNotCompleteError(todo_id, pending)

    def _reaches(self, *, start_id: int, target_id: int) -> bool:
        """Whether ``target_id`` is among ``start_id`` and its transitive predecessors."""

        visited = {start_id}
        frontier = [start_id]
        while frontier:
            if target_id in frontier:
                return True
            rows = self.session.exec(
                select(TodoDependency.predecessor_id).where(
                    col(TodoDependency.successor_id).in_(frontier),
                ),
            ).all()
            frontier = [row for row in set(rows) if row not in visited]
            visited.update(frontier)
        return False

    def _require_todo(self, todo_id: int) -> None:
        found = self.session.exec(select(Todo.id).where(Todo.id == todo_id)).first()
        if found is None:
            raise NotFoundError("Todo", todo_id)
