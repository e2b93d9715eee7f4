from __future__ import annotations

import allure
import pytest

from sitback.errors import ValidationError
from sitback.models import (
    ClaimRequest,
    SortOrder,
    TodoCreate,
    TodoQuery,
    TodoSortField,
    TodoStatus,
)
from sitback.tracker import TaskTracker

pytestmark = [
    allure.epic("Task Tracking"),
    allure.feature("Todo Queries"),
]


def _seed(tracker: TaskTracker) -> dict[str, int]:
    ids = {}
    ids["done"] = tracker.add_todo(
        TodoCreate(description="done", status=TodoStatus.COMPLETED, priority=2),
    ).id
    ids["dropped"] = tracker.add_todo(
        TodoCreate(description="dropped", status=TodoStatus.CANCELLED, due_date="2030-03-01"),
    ).id
    ids["urgent"] = tracker.add_todo(
        TodoCreate(description="urgent", priority=5, due_date="2030-01-15", tag_path="work"),
    ).id
    ids["blocked"] = tracker.add_todo(
        TodoCreate(description="blocked", predecessor_ids=(ids["urgent"],), priority=3),
    ).id
    ids["later"] = tracker.add_todo(
        TodoCreate(description="later", priority=1, due_date="2030-06-01", tag_path="work/docs"),
    ).id
    return ids


def test_default_listing_includes_every_status_in_claim_order(tracker: TaskTracker) -> None:
    ids = _seed(tracker)

    listed = tracker.get_todos_for_get(TodoQuery())

    assert [todo.id for todo in listed] == [
        ids["urgent"],
        ids["dropped"],
        ids["later"],
        ids["blocked"],
        ids["done"],
    ]
    statuses = {todo.status for todo in listed}
    assert TodoStatus.COMPLETED in statuses
    assert TodoStatus.CANCELLED in statuses


def test_status_blocked_and_priority_filters(tracker: TaskTracker) -> None:
    ids = _seed(tracker)

    open_ids = [
        todo.id
        for todo in tracker.get_todos_for_get(
            TodoQuery(statuses=(TodoStatus.TODO, TodoStatus.IN_PROGRESS)),
        )
    ]
    assert open_ids == [ids["urgent"], ids["later"], ids["blocked"]]

    blocked = tracker.get_todos_for_get(TodoQuery(blocked=True))
    assert [todo.id for todo in blocked] == [ids["blocked"]]
    assert tracker.count_todos_for_get(TodoQuery(blocked=False)) == 4

    high = tracker.get_todos_for_get(TodoQuery(min_priority=3))
    assert [todo.id for todo in high] == [ids["urgent"], ids["blocked"]]


def test_due_date_range_is_inclusive_and_skips_undated(tracker: TaskTracker) -> None:
    ids = _seed(tracker)

    ranged = tracker.get_todos_for_get(TodoQuery(due_after="2030-01-15", due_before="2030-03-01"))

    assert [todo.id for todo in ranged] == [ids["urgent"], ids["dropped"]]
    assert tracker.count_todos_for_get(TodoQuery(due_before="2099-12-31")) == 3


def test_assignee_and_lease_filters(tracker: TaskTracker) -> None:
    tracker.add_todo(
        TodoCreate(
            description="stale",
            status=TodoStatus.IN_PROGRESS,
            assignee="alice",
            assignee_lease="2000-01-01 00:00:00",
        ),
    )
    fresh = tracker.add_todo(TodoCreate(description="fresh"))
    free = tracker.add_todo(TodoCreate(description="free", due_date="2099-01-01"))
    claimed = tracker.claim_todo(ClaimRequest(assignee="bob", todo_id=fresh.id))
    assert claimed is not None

    assert [todo.description for todo in tracker.get_todos_for_get(TodoQuery(assignee="bob"))] == [
        "fresh",
    ]
    assert [todo.id for todo in tracker.get_todos_for_get(TodoQuery(has_assignee=False))] == [
        free.id,
    ]
    assert tracker.count_todos_for_get(TodoQuery(has_assignee=True)) == 2
    expired = tracker.get_todos_for_get(TodoQuery(lease_expired=True))
    assert [todo.description for todo in expired] == ["stale"]
    not_expired = tracker.get_todos_for_get(TodoQuery(lease_expired=False))
    assert sorted(todo.description for todo in not_expired) == ["free", "fresh"]


def test_explicit_sort_keeps_id_tie_break(tracker: TaskTracker) -> None:
    first = tracker.add_todo(TodoCreate(description="first", priority=2))
    second = tracker.add_todo(TodoCreate(description="second", priority=4))
    third = tracker.add_todo(TodoCreate(description="third", priority=2))

    descending = tracker.get_todos_for_get(
        TodoQuery(sort_by=TodoSortField.PRIORITY, sort_order=SortOrder.DESC),
    )
    assert [todo.id for todo in descending] == [second.id, first.id, third.id]

    by_id = tracker.get_todos_for_get(TodoQuery(sort_by="id", sort_order="desc"))
    assert [todo.id for todo in by_id] == [third.id, second.id, first.id]


def test_explicit_sort_treats_missing_due_date_and_priority_as_lowest(tracker: TaskTracker) -> None:
    undated = tracker.add_todo(TodoCreate(description="undated"))
    dated = tracker.add_todo(TodoCreate(description="dated", due_date="2030-01-01", priority=1))

    ascending = tracker.get_todos_for_get(
        TodoQuery(sort_by=TodoSortField.DUE_DATE, sort_order=SortOrder.ASC),
    )
    assert [todo.id for todo in ascending] == [dated.id, undated.id]

    descending = tracker.get_todos_for_get(
        TodoQuery(sort_by=TodoSortField.DUE_DATE, sort_order=SortOrder.DESC),
    )
    assert [todo.id for todo in descending] == [undated.id, dated.id]

    by_priority = tracker.get_todos_for_get(
        TodoQuery(sort_by=TodoSortField.PRIORITY, sort_order=SortOrder.DESC),
    )
    assert [todo.id for todo in by_priority] == [dated.id, undated.id]


def test_explicit_ids_ignore_limit_and_tag_path(tracker: TaskTracker) -> None:
    todo_ids = tuple(
        tracker.add_todo(TodoCreate(description=f"todo {index}")).id for index in range(25)
    )

    listed = tracker.get_todos_for_get(TodoQuery(ids=todo_ids))
    assert [todo.id for todo in listed] == list(todo_ids)
    assert len(tracker.get_todos_for_get(TodoQuery(ids=todo_ids, limit=3))) == 25

    scoped = tracker.get_todos_for_get(TodoQuery(ids=todo_ids[:2]), tag_path="missing/path")
    assert [todo.id for todo in scoped] == list(todo_ids[:2])
    assert tracker.count_todos_for_get(TodoQuery(ids=todo_ids), tag_path="missing/path") == 25


def test_explicit_ids_bypass_filters_and_keep_order(tracker: TaskTracker) -> None:
    ids = _seed(tracker)

    listed = tracker.get_todos_for_get(
        TodoQuery(
            ids=(ids["done"], 999, ids["urgent"], ids["done"]),
            statuses=(TodoStatus.TODO,),
            min_priority=5,
        ),
    )

    assert [todo.id for todo in listed] == [ids["done"], ids["urgent"]]
    assert tracker.count_todos_for_get(TodoQuery(ids=(ids["done"], 999))) == 1


def test_limit_and_configured_default(tracker: TaskTracker) -> None:
    for index in range(25):
        tracker.add_todo(TodoCreate(description=f"todo {index}"))

    assert len(tracker.get_todos_for_get(TodoQuery())) == 20
    assert len(tracker.get_todos_for_get(TodoQuery(limit=5))) == 5
    assert tracker.count_todos_for_get(TodoQuery(limit=5)) == 25
    with pytest.raises(ValidationError):
        tracker.get_todos_for_get(TodoQuery(limit=0))


def test_projection_restricts_fields(tracker: TaskTracker) -> None:
    todo = tracker.add_todo(TodoCreate(description="project me", priority=3))

    records = tracker.get_todo_records(TodoQuery(), ["id", "status", "is_blocked"])

    assert records == [{"id": todo.id, "status": "todo", "is_blocked": False}]
    with pytest.raises(ValidationError, match="Unknown todo field"):
        tracker.get_todo_records(TodoQuery(), ["id", "colour"])


@pytest.mark.parametrize(
    "query",
    [
        TodoQuery(statuses=("done",)),
        TodoQuery(min_priority=9),
        TodoQuery(due_before="2030-13-01"),
        TodoQuery(due_after="tomorrow"),
        TodoQuery(sort_by="title"),
    ],
)
def test_malformed_filters_are_rejected(tracker: TaskTracker, query: TodoQuery) -> None:
    with pytest.raises(ValidationError):
        tracker.get_todos_for_get(query)
