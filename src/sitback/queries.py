"""Composable todo filtering, ordering, counting and projection."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import and_, func, or_
from sqlmodel import Session, col, select

from sitback.dependencies import blocked_expression
from sitback.errors import ValidationError
from sitback.models import TODO_FIELDS, SortOrder, TodoQuery, TodoSortField, TodoStatus, TodoView
from sitback.scheduler import claim_order
from sitback.storage.common import now_timestamp
from sitback.storage.sqlmodel_models import FAR_FUTURE_DATE, Todo
from sitback.tags import TagResolver

# Undated sorts as far future and unprioritised as 0, matching the claim order.
SORT_COLUMNS: dict[TodoSortField, Any] = {
    TodoSortField.ID: col(Todo.id),
    TodoSortField.PRIORITY: func.coalesce(Todo.priority, 0),
    TodoSortField.DUE_DATE: func.coalesce(Todo.due_date, FAR_FUTURE_DATE),
    TodoSortField.CREATED_AT: col(Todo.created_at),
    TodoSortField.UPDATED_AT: col(Todo.updated_at),
}


class TodoQueryEngine:
    """Read-side todo access bound to one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, todo_id: int) -> TodoView | None:
        views = self.get_by_ids([todo_id])
        return views[0] if views else None

    def get_by_ids(self, todo_ids: Iterable[int]) -> list[TodoView]:
        """Views in requested order; repeats collapse, unknown ids are skipped."""

        ordered = list(dict.fromkeys(todo_ids))
        if not ordered:
            return []
        rows = self.session.exec(
            select(Todo, blocked_expression(Todo.id).label("is_blocked")).where(
                col(Todo.id).in_(ordered),
            )
            .execution_options(populate_existing=True),
        ).all()
        by_id = {row.id: to_todo_view(row, blocked) for row, blocked in rows}
        return [by_id[todo_id] for todo_id in ordered if todo_id in by_id]

    def list_todos(self, query: TodoQuery) -> list[TodoView]:
        """Filtered, ordered and limited listing; an explicit ``ids`` list bypasses all three."""

        if query.ids is not None:
            return self.get_by_ids(query.ids)

        statement = select(Todo, blocked_expression(Todo.id).label("is_blocked")).where(
            *self._filters(query),
        )
        statement = statement.order_by(*self._ordering(query)).execution_options(
            populate_existing=True,
        )
        if query.limit is not None:
            statement = statement.limit(query.limit)
        return [to_todo_view(row, blocked) for row, blocked in self.session.exec(statement).all()]

    def count(self, query: TodoQuery) -> int:
        if query.ids is not None:
            return len(self.get_by_ids(query.ids))
        total = self.session.exec(
            select(func.count()).select_from(Todo).where(*self._filters(query)),
        ).one()
        return int(total)

    def _filters(self, query: TodoQuery) -> list[Any]:
        clauses: list[Any] = []
        if query.blocked is not None:
            blocked = blocked_expression(Todo.id)
            clauses.append(blocked if query.blocked else ~blocked)
        if query.statuses:
            clauses.append(col(Todo.status).in_([TodoStatus(s).value for s in query.statuses]))
        if query.min_priority is not None:
            clauses.append(col(Todo.priority) >= query.min_priority)
        if query.due_before is not None:
            clauses.append(col(Todo.due_date) <= query.due_before)
        if query.due_after is not None:
            clauses.append(col(Todo.due_date) >= query.due_after)
        if query.tag_id is not None:
            scope = TagResolver(self.session).subtree_ids(query.tag_id)
            clauses.append(col(Todo.tag_id).in_(sorted(scope)))
        if query.assignee is not None:
            clauses.append(col(Todo.assignee) == query.assignee)
        if query.has_assignee is not None:
            assignee = col(Todo.assignee)
            clauses.append(assignee.is_not(None) if query.has_assignee else assignee.is_(None))
        if query.lease_expired is not None:
            now = now_timestamp()
            lease = col(Todo.assignee_lease)
            if query.lease_expired:
                clauses.append(and_(lease.is_not(None), lease <= now))
            else:
                clauses.append(or_(lease.is_(None), lease > now))
        return clauses

    @staticmethod
    def _ordering(query: TodoQuery) -> list[Any]:
        if query.sort_by is None:
            return claim_order(Todo)
        sort_field = TodoSortField(query.sort_by)
        column = SORT_COLUMNS[sort_field]
        primary = column.desc() if SortOrder(query.sort_order) is SortOrder.DESC else column.asc()
        if sort_field is TodoSortField.ID:
            return [primary]
        return [primary, col(Todo.id).asc()]


def project(todos: Sequence[TodoView], fields: Sequence[str]) -> list[dict[str, object]]:
    """Plain dicts restricted to ``fields``, in the order given."""

    unknown = [name for name in fields if name not in TODO_FIELDS]
    if unknown:
        raise ValidationError(
            f"Unknown todo field(s): {', '.join(unknown)}. Allowed: {', '.join(TODO_FIELDS)}",
            field="fields",
        )
    records = []
    for todo in todos:
        record: dict[str, object] = {}
        for name in fields:
            value = getattr(todo, name)
            record[name] = value.value if isinstance(value, TodoStatus) else value
        records.append(record)
    return records


def to_todo_view(row: Todo, is_blocked: bool) -> TodoView:
    return TodoView(
        id=row.id or 0,
        description=row.description,
        tag_id=row.tag_id,
        status=TodoStatus(row.status),
        assignee=row.assignee,
        assignee_lease=row.assignee_lease,
        work_notes=row.work_notes,
        priority=row.priority,
        due_date=row.due_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
        is_blocked=bool(is_blocked),
    )
