"""Caller-facing task tracker API.

Each public method validates its input, opens exactly one transaction on the
store and composes the tag, dependency, claim and query components inside
it. Mutations run under ``BEGIN IMMEDIATE``; reads run in a deferred
snapshot.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col

from sitback.config import SchedulerSettings, Settings
from sitback.dependencies import DependencyGraph
from sitback.errors import (
    NotClaimableError,
    NotFoundError,
    PredecessorNotCompleteError,
    ValidationError,
)
from sitback.export import build_export_tree
from sitback.models import (
    UNSET,
    ClaimRequest,
    ExportTree,
    SortOrder,
    TagDeletion,
    TagForestSummary,
    TagSummary,
    TagView,
    TodoChanges,
    TodoCreate,
    TodoDeletion,
    TodoQuery,
    TodoSortField,
    TodoStatus,
    TodoView,
    _Unset,
)
from sitback.queries import TodoQueryEngine, project
from sitback.scheduler import ClaimScheduler
from sitback.storage.common import now_timestamp
from sitback.storage.sqlmodel_models import Todo
from sitback.storage.store import TodoStore
from sitback.tags import TagResolver
from sitback.validation import (
    dedupe_ids,
    validate_assignee,
    validate_description,
    validate_due_date,
    validate_positive_int,
    validate_priority,
    validate_status,
    validate_timestamp,
)

logger = logging.getLogger(__name__)

COMPLETION_GUARD_MESSAGE = "predecessor_not_completed"


class TaskTracker:
    """Todos, tags and dependencies on top of one ``TodoStore``."""

    def __init__(self, store: TodoStore, *, settings: SchedulerSettings | None = None) -> None:
        self.store = store
        self.settings = settings or SchedulerSettings()

    @classmethod
    def from_settings(cls, settings: Settings) -> TaskTracker:
        settings.validate()
        store = TodoStore(settings.db_path, busy_timeout_ms=settings.storage.busy_timeout_ms)
        return cls(store, settings=settings.scheduler)

    def init_schema(self) -> None:
        self.store.init_schema()

    def close(self) -> None:
        self.store.close()

    # Todos

    def add_todo(self, todo: TodoCreate) -> TodoView:
        """Create a todo, optionally tagged by path or id, with predecessors."""

        description = validate_description(todo.description)
        status = validate_status(todo.status)
        priority = validate_priority(todo.priority)
        due_date = validate_due_date(todo.due_date)
        assignee = validate_assignee(todo.assignee) if todo.assignee is not None else None
        lease = validate_timestamp(todo.assignee_lease)
        predecessor_ids = dedupe_ids(todo.predecessor_ids, field="predecessor_ids")
        if todo.tag_path is not None and todo.tag_id is not None:
            raise ValidationError("Pass either tag_path or tag_id, not both", field="tag_path")

        with self.store.transaction() as session:
            tags = TagResolver(session)
            tag_id = todo.tag_id
            if todo.tag_path is not None:
                tag_id = tags.ensure_path(todo.tag_path).id
            elif tag_id is not None and tags.get(tag_id) is None:
                raise NotFoundError("Tag", tag_id)

            now = now_timestamp()
            row = Todo(
                description=description,
                tag_id=tag_id,
                status=status.value,
                assignee=assignee,
                assignee_lease=lease,
                work_notes=todo.work_notes,
                priority=priority,
                due_date=due_date,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            todo_id = row.id or 0

            graph = DependencyGraph(session)
            for predecessor_id in predecessor_ids:
                graph.add_dependency(todo_id, predecessor_id)
            if status is TodoStatus.COMPLETED:
                graph.ensure_can_complete(todo_id)

            logger.info("Added todo %s (status=%s, tag_id=%s)", todo_id, status.value, tag_id)
            return self._require_view(session, todo_id)

    def update_todo_with_relations(
        self,
        todo_id: int,
        changes: TodoChanges | None = None,
        *,
        predecessor_ids: Sequence[int] | None = None,
    ) -> TodoView:
        """Apply field changes and optionally replace the predecessor set.

        The predecessor replacement lands first, so a status change to
        ``completed`` is checked against the new set.
        """

        values = self._validated_changes(changes or TodoChanges())
        replacement = (
            dedupe_ids(predecessor_ids, field="predecessor_ids")
            if predecessor_ids is not None
            else None
        )

        with self.store.transaction() as session:
            row = session.get(Todo, todo_id)
            if row is None:
                raise NotFoundError("Todo", todo_id)

            graph = DependencyGraph(session)
            if replacement is not None:
                graph.replace_predecessors(todo_id, replacement)

            tag_id = values.get("tag_id")
            if isinstance(tag_id, int) and TagResolver(session).get(tag_id) is None:
                raise NotFoundError("Tag", tag_id)
            completing = values.get("status") == TodoStatus.COMPLETED.value
            if completing and row.status != TodoStatus.COMPLETED.value:
                graph.ensure_can_complete(todo_id)

            if values:
                for name, value in values.items():
                    setattr(row, name, value)
                row.updated_at = now_timestamp()
                session.add(row)
                self._flush_todo(session, todo_id)

            logger.info("Updated todo %s (fields=%s)", todo_id, sorted(values))
            return self._require_view(session, todo_id)

    def delete_todo(self, todo_id: int) -> TodoView:
        """Delete one todo; its dependency edges go with it."""

        with self.store.transaction() as session:
            view = TodoQueryEngine(session).get(todo_id)
            if view is None:
                raise NotFoundError("Todo", todo_id)
            session.exec(
                sa_delete(Todo)
                .where(col(Todo.id) == todo_id)
                .execution_options(synchronize_session=False),
            )
            logger.info("Deleted todo %s", todo_id)
            return view

    def delete_todos(self, todo_ids: Sequence[int]) -> TodoDeletion:
        """Delete many todos at once; unknown ids are reported, not raised."""

        requested = dedupe_ids(todo_ids, field="ids")
        if not requested:
            return TodoDeletion(requested_ids=[], deleted_ids=[])
        with self.store.transaction() as session:
            result = session.exec(
                sa_delete(Todo)
                .where(col(Todo.id).in_(requested))
                .returning(Todo.id)
                .execution_options(synchronize_session=False),
            )
            deleted = sorted(result.scalars().all())
        logger.info("Deleted %d of %d requested todos", len(deleted), len(requested))
        return TodoDeletion(requested_ids=requested, deleted_ids=deleted)

    def delete_dashboard_todos(self, todo_ids: Sequence[int]) -> list[int]:
        return self.delete_todos(todo_ids).deleted_ids

    def claim_todo(self, request: ClaimRequest) -> TodoView | None:
        """Lease the best eligible todo, or the requested one, to an assignee.

        ``None`` means nothing was eligible. When a specific todo was asked
        for and could not be claimed, ``NotClaimableError`` is raised.
        """

        assignee = validate_assignee(request.assignee)
        lease_minutes = request.lease_minutes
        if lease_minutes is None:
            lease_minutes = self.settings.default_lease_minutes
        validate_positive_int(lease_minutes, field="lease_minutes")
        if request.todo_id is not None:
            validate_positive_int(request.todo_id, field="todo_id")
        if request.tag_path is not None and request.tag_id is not None:
            raise ValidationError("Pass either tag_path or tag_id, not both", field="tag_path")

        with self.store.transaction() as session:
            tags = TagResolver(session)
            scope_id = request.tag_id
            if request.tag_path is not None:
                scope = tags.resolve_path(request.tag_path)
                if scope is None:
                    raise NotFoundError("Tag path", request.tag_path)
                scope_id = scope.id
            elif scope_id is not None and tags.get(scope_id) is None:
                raise NotFoundError("Tag", scope_id)

            claimed_id = ClaimScheduler(session).claim(
                assignee=assignee,
                lease_minutes=lease_minutes,
                todo_id=request.todo_id,
                tag_ids=tags.subtree_ids(scope_id) if scope_id is not None else None,
            )
            if claimed_id is None:
                if request.todo_id is not None:
                    raise NotClaimableError(request.todo_id)
                return None
            return self._require_view(session, claimed_id)

    def get_todo(self, todo_id: int) -> TodoView | None:
        with self.store.session() as session:
            return TodoQueryEngine(session).get(todo_id)

    def get_todos_for_get(self, query: TodoQuery, *, tag_path: str | None = None) -> list[TodoView]:
        """List todos matching ``query``; an unknown ``tag_path`` matches nothing.

        An explicit ``ids`` list ignores ``tag_path`` and the limit.
        """

        checked = self._validated_query(query)
        with self.store.session() as session:
            scoped = self._scope_query(session, checked, tag_path)
            if scoped is None:
                return []
            return TodoQueryEngine(session).list_todos(scoped)

    def count_todos_for_get(self, query: TodoQuery, *, tag_path: str | None = None) -> int:
        checked = self._validated_query(query)
        with self.store.session() as session:
            scoped = self._scope_query(session, checked, tag_path)
            if scoped is None:
                return 0
            return TodoQueryEngine(session).count(scoped)

    def get_todo_records(
        self,
        query: TodoQuery,
        fields: Sequence[str],
        *,
        tag_path: str | None = None,
    ) -> list[dict[str, object]]:
        """Listing projected to ``fields``."""

        if not fields:
            raise ValidationError("At least one field is required", field="fields")
        project([], fields)
        return project(self.get_todos_for_get(query, tag_path=tag_path), fields)

    # Tags

    def ensure_tag_path(self, path: str) -> TagView:
        with self.store.transaction() as session:
            return TagResolver(session).ensure_path(path)

    def resolve_tag_path(self, path: str) -> TagView | None:
        with self.store.session() as session:
            return TagResolver(session).resolve_path(path)

    def add_tag(self, name: str, parent_id: int | None = None) -> TagView:
        with self.store.transaction() as session:
            tag = TagResolver(session).add(name, parent_id)
        logger.info("Added tag %s (%r, parent_id=%s)", tag.id, tag.name, tag.parent_id)
        return tag

    def get_tag(self, tag_id: int) -> TagView | None:
        with self.store.session() as session:
            return TagResolver(session).get(tag_id)

    def list_tags(self) -> list[TagView]:
        with self.store.session() as session:
            return TagResolver(session).list()

    def delete_tag(self, tag_id: int) -> TagDeletion:
        with self.store.transaction() as session:
            return TagResolver(session).delete(tag_id)

    def update_tag(
        self,
        tag_id: int,
        *,
        name: str | None = None,
        parent_id: int | None | _Unset = UNSET,
    ) -> TagView:
        if name is None and parent_id is UNSET:
            raise ValidationError("Nothing to update: pass name and/or parent_id", field="name")
        with self.store.transaction() as session:
            return TagResolver(session).update(tag_id, name=name, parent_id=parent_id)

    def get_tag_summary(self, tag_id: int) -> TagSummary | None:
        with self.store.session() as session:
            return TagResolver(session).summary(tag_id)

    def get_all_tags_summary(self) -> TagForestSummary:
        with self.store.session() as session:
            return TagResolver(session).all_summary()

    # Dependencies

    def add_dependency(self, successor_id: int, predecessor_id: int) -> bool:
        with self.store.transaction() as session:
            return DependencyGraph(session).add_dependency(successor_id, predecessor_id)

    def remove_dependency(self, successor_id: int, predecessor_id: int) -> bool:
        with self.store.transaction() as session:
            return DependencyGraph(session).remove_dependency(successor_id, predecessor_id)

    def get_predecessor_ids(self, todo_id: int) -> list[int]:
        with self.store.session() as session:
            return DependencyGraph(session).predecessor_ids(todo_id)

    def set_dashboard_todo_predecessors(self, todo_id: int, predecessor_ids: Sequence[int]) -> list[int]:
        """Replace predecessors, ignoring the todo's own id in the new set."""

        candidates = dedupe_ids(predecessor_ids, field="predecessor_ids")
        with self.store.transaction() as session:
            return DependencyGraph(session).replace_predecessors(
                todo_id,
                [candidate for candidate in candidates if candidate != todo_id],
            )

    # Export

    def get_export_tree(self) -> ExportTree:
        with self.store.session() as session:
            return build_export_tree(session)

    def _validated_query(self, query: TodoQuery) -> TodoQuery:
        statuses = tuple(validate_status(status) for status in query.statuses)
        try:
            sort_by = TodoSortField(query.sort_by) if query.sort_by is not None else None
            sort_order = SortOrder(query.sort_order)
        except ValueError as error:
            raise ValidationError(str(error), field="sort_by") from error
        if query.ids is not None:
            dedupe_ids(query.ids, field="ids")
        limit = query.limit if query.limit is not None else self.settings.default_limit
        return dataclasses.replace(
            query,
            statuses=statuses,
            sort_by=sort_by,
            sort_order=sort_order,
            min_priority=validate_priority(query.min_priority),
            due_before=validate_due_date(query.due_before),
            due_after=validate_due_date(query.due_after),
            limit=validate_positive_int(limit, field="limit"),
        )

    @staticmethod
    def _scope_query(session: Session, query: TodoQuery, tag_path: str | None) -> TodoQuery | None:
        if tag_path is None or query.ids is not None:
            return query
        if query.tag_id is not None:
            raise ValidationError("Pass either tag_path or tag_id, not both", field="tag_path")
        tag = TagResolver(session).resolve_path(tag_path)
        if tag is None:
            return None
        return dataclasses.replace(query, tag_id=tag.id)

    @staticmethod
    def _validated_changes(changes: TodoChanges) -> dict[str, object]:
        values = changes.as_values()
        if "description" in values:
            values["description"] = validate_description(str(values["description"]))
        if "status" in values:
            values["status"] = validate_status(values["status"]).value  # type: ignore[arg-type]
        if "priority" in values:
            values["priority"] = validate_priority(values["priority"])  # type: ignore[arg-type]
        if "due_date" in values:
            values["due_date"] = validate_due_date(values["due_date"])  # type: ignore[arg-type]
        if "assignee_lease" in values:
            values["assignee_lease"] = validate_timestamp(values["assignee_lease"])  # type: ignore[arg-type]
        if values.get("assignee") is not None:
            values["assignee"] = validate_assignee(str(values["assignee"]))
        if values.get("tag_id") is not None:
            values["tag_id"] = validate_positive_int(values["tag_id"], field="tag_id")  # type: ignore[arg-type]
        return values

    @staticmethod
    def _flush_todo(session: Session, todo_id: int) -> None:
        try:
            session.flush()
        except IntegrityError as error:
            if COMPLETION_GUARD_MESSAGE in str(error.orig):
                raise PredecessorNotCompleteError(todo_id) from error
            raise

    @staticmethod
    def _require_view(session: Session, todo_id: int) -> TodoView:
        view = TodoQueryEngine(session).get(todo_id)
        if view is None:
            raise NotFoundError("Todo", todo_id)
        return view
