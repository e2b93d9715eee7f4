"""Domain records exchanged between the core and its callers."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum


class TodoStatus(str, Enum):
    """Todo lifecycle states."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


CLAIMABLE_STATUSES = (TodoStatus.TODO, TodoStatus.IN_PROGRESS)


class TodoSortField(str, Enum):
    """Explicit sort fields for todo listings."""

    ID = "id"
    PRIORITY = "priority"
    DUE_DATE = "due_date"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class _Unset(Enum):
    UNSET = "unset"


UNSET = _Unset.UNSET


@dataclass(slots=True)
class TagView:
    """Readable tag record."""

    id: int
    name: str
    parent_id: int | None


@dataclass(slots=True)
class TagTreeNode:
    """Tag with its nested children, ordered by name then id."""

    id: int
    name: str
    parent_id: int | None
    children: list[TagTreeNode] = field(default_factory=list)


@dataclass(slots=True)
class TagSummary:
    """One tag, its subtree and the number of todos tagged inside it."""

    tag: TagView
    tag_tree: TagTreeNode
    todo_count: int


@dataclass(slots=True)
class TagForestSummary:
    """All root tags with the number of tagged todos."""

    tag_tree: list[TagTreeNode]
    todo_count: int


@dataclass(slots=True)
class TagDeletion:
    """Outcome of a cascading tag delete."""

    deleted_id: int
    deleted_name: str
    deleted_tag_ids: list[int]
    cleared_todo_count: int


@dataclass(slots=True)
class TodoView:
    """Readable todo record with the derived blocked flag."""

    id: int
    description: str
    tag_id: int | None
    status: TodoStatus
    assignee: str | None
    assignee_lease: str | None
    work_notes: str | None
    priority: int | None
    due_date: str | None
    created_at: str
    updated_at: str
    is_blocked: bool


TODO_FIELDS = tuple(item.name for item in fields(TodoView))


@dataclass(slots=True)
class TodoCreate:
    """Input payload for adding a todo."""

    description: str
    status: TodoStatus = TodoStatus.TODO
    tag_path: str | None = None
    tag_id: int | None = None
    predecessor_ids: tuple[int, ...] = ()
    work_notes: str | None = None
    priority: int | None = None
    due_date: str | None = None
    assignee: str | None = None
    assignee_lease: str | None = None


@dataclass(slots=True)
class TodoChanges:
    """Partial todo update; fields left as ``UNSET`` are not touched."""

    description: str | _Unset = UNSET
    status: TodoStatus | _Unset = UNSET
    tag_id: int | None | _Unset = UNSET
    work_notes: str | None | _Unset = UNSET
    priority: int | None | _Unset = UNSET
    due_date: str | None | _Unset = UNSET
    assignee: str | None | _Unset = UNSET
    assignee_lease: str | None | _Unset = UNSET

    def as_values(self) -> dict[str, object]:
        values: dict[str, object] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is not UNSET:
                values[item.name] = value
        return values


@dataclass(slots=True)
class TodoQuery:
    """Composable todo filter set for listing and counting."""

    ids: tuple[int, ...] | None = None
    blocked: bool | None = None
    statuses: tuple[TodoStatus, ...] = ()
    min_priority: int | None = None
    due_before: str | None = None
    due_after: str | None = None
    tag_id: int | None = None
    assignee: str | None = None
    has_assignee: bool | None = None
    lease_expired: bool | None = None
    sort_by: TodoSortField | None = None
    sort_order: SortOrder = SortOrder.ASC
    limit: int | None = None


@dataclass(slots=True)
class ClaimRequest:
    """Input for claiming the next actionable todo."""

    assignee: str
    lease_minutes: int | None = None
    todo_id: int | None = None
    tag_id: int | None = None
    tag_path: str | None = None


@dataclass(slots=True)
class TodoDeletion:
    """Outcome of deleting a batch of todos."""

    requested_ids: list[int]
    deleted_ids: list[int]

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_ids)


@dataclass(slots=True)
class ExportTodoNode:
    """Todo node in the dependency forest; children are its successors."""

    id: int
    description: str
    status: TodoStatus
    tag_id: int | None
    assignee: str | None
    work_notes: str | None
    priority: int | None
    due_date: str | None
    created_at: str
    updated_at: str
    is_blocked: bool
    predecessor_ids: list[int] = field(default_factory=list)
    children: list[ExportTodoNode] = field(default_factory=list)


@dataclass(slots=True)
class ExportTree:
    """Tag forest plus todo dependency forest rooted at todos without predecessors."""

    tag_tree: list[TagTreeNode]
    todo_tree: list[ExportTodoNode]
