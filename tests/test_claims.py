from __future__ import annotations

import queue
import threading
from datetime import timedelta
from pathlib import Path

import allure
import pytest

from sitback.errors import NotClaimableError, NotFoundError, ValidationError
from sitback.models import ClaimRequest, TodoChanges, TodoCreate, TodoStatus
from sitback.storage.common import format_timestamp, now_timestamp, utc_now
from sitback.storage.store import TodoStore
from sitback.tracker import TaskTracker

pytestmark = [
    allure.epic("Task Tracking"),
    allure.feature("Claim Scheduling"),
]

PAST_LEASE = "2000-01-01 00:00:00"
FUTURE_LEASE = "2999-01-01 00:00:00"


def _run_claim_thread(  # pragma: no cover - timing-sensitive helper
    db_path: Path,
    assignee: str,
    start_event: threading.Event,
    result_queue: queue.Queue[tuple[str, int | None, str]],
) -> None:
    tracker = TaskTracker(TodoStore(db_path))
    try:
        start_event.wait(timeout=2)
        claimed = tracker.claim_todo(ClaimRequest(assignee=assignee))
        result_queue.put((assignee, claimed.id if claimed else None, ""))
    except Exception as error:  # noqa: BLE001
        result_queue.put((assignee, None, str(error)))
    finally:
        tracker.close()


def test_claim_sets_status_assignee_and_lease(tracker: TaskTracker) -> None:
    todo = tracker.add_todo(TodoCreate(description="write report"))
    before = format_timestamp(utc_now() + timedelta(minutes=29))

    claimed = tracker.claim_todo(ClaimRequest(assignee=" worker-a ", lease_minutes=30))

    assert claimed is not None
    assert claimed.id == todo.id
    assert claimed.status == TodoStatus.IN_PROGRESS
    assert claimed.assignee == "worker-a"
    assert claimed.assignee_lease is not None
    assert claimed.assignee_lease >= before


def test_claim_prefers_earliest_due_date_over_priority(tracker: TaskTracker) -> None:
    tracker.add_todo(TodoCreate(description="later", due_date="2030-02-01", priority=5))
    tracker.add_todo(TodoCreate(description="undated", priority=1))
    earliest = tracker.add_todo(TodoCreate(description="earliest", due_date="2030-01-01", priority=1))

    claimed = tracker.claim_todo(ClaimRequest(assignee="worker"))

    assert claimed is not None
    assert claimed.id == earliest.id


def test_claim_order_is_total(tracker: TaskTracker) -> None:
    low = tracker.add_todo(TodoCreate(description="low", priority=1))
    high = tracker.add_todo(TodoCreate(description="high", priority=5))
    tie = tracker.add_todo(TodoCreate(description="tie", priority=5))
    unset = tracker.add_todo(TodoCreate(description="unset"))

    order = []
    while (claimed := tracker.claim_todo(ClaimRequest(assignee="worker"))) is not None:
        order.append(claimed.id)

    assert order == [high.id, tie.id, low.id, unset.id]


def test_end_to_end_dependency_chain(tracker: TaskTracker) -> None:
    a = tracker.add_todo(TodoCreate(description="A", status=TodoStatus.COMPLETED))
    b = tracker.add_todo(TodoCreate(description="B", predecessor_ids=(a.id,)))
    c = tracker.add_todo(
        TodoCreate(description="C", predecessor_ids=(b.id,), due_date="2030-01-01"),
    )
    assert b.is_blocked is False
    assert c.is_blocked is True

    first = tracker.claim_todo(ClaimRequest(assignee="worker"))
    assert first is not None
    assert first.id == b.id

    tracker.update_todo_with_relations(b.id, TodoChanges(status=TodoStatus.COMPLETED))
    second = tracker.claim_todo(ClaimRequest(assignee="worker"))
    assert second is not None
    assert second.id == c.id


def test_expired_lease_is_reclaimable(tracker: TaskTracker) -> None:
    todo = tracker.add_todo(
        TodoCreate(
            description="stale",
            status=TodoStatus.IN_PROGRESS,
            assignee="worker-a",
            assignee_lease=PAST_LEASE,
        ),
    )

    claimed = tracker.claim_todo(ClaimRequest(assignee="worker-b"))

    assert claimed is not None
    assert claimed.id == todo.id
    assert claimed.assignee == "worker-b"
    assert claimed.assignee_lease is not None
    assert claimed.assignee_lease > now_timestamp()


def test_active_lease_is_not_reclaimable_by_anyone(tracker: TaskTracker) -> None:
    todo = tracker.add_todo(
        TodoCreate(
            description="busy",
            status=TodoStatus.IN_PROGRESS,
            assignee="worker-a",
            assignee_lease=FUTURE_LEASE,
        ),
    )

    assert tracker.claim_todo(ClaimRequest(assignee="worker-b")) is None
    assert tracker.claim_todo(ClaimRequest(assignee="worker-a")) is None
    with pytest.raises(NotClaimableError):
        tracker.claim_todo(ClaimRequest(assignee="worker-a", todo_id=todo.id))


def test_finished_and_blocked_todos_are_not_claimable(tracker: TaskTracker) -> None:
    done = tracker.add_todo(TodoCreate(description="done", status=TodoStatus.COMPLETED))
    tracker.add_todo(TodoCreate(description="dropped", status=TodoStatus.CANCELLED))
    blocker = tracker.add_todo(TodoCreate(description="blocker", status=TodoStatus.CANCELLED))
    blocked = tracker.add_todo(TodoCreate(description="blocked", predecessor_ids=(blocker.id,)))

    assert tracker.claim_todo(ClaimRequest(assignee="worker")) is None
    for todo_id in (done.id, blocked.id):
        with pytest.raises(NotClaimableError, match=f"Todo {todo_id} is not claimable"):
            tracker.claim_todo(ClaimRequest(assignee="worker", todo_id=todo_id))
    with pytest.raises(NotClaimableError):
        tracker.claim_todo(ClaimRequest(assignee="worker", todo_id=999))


def test_specific_id_claim_bypasses_ordering(tracker: TaskTracker) -> None:
    tracker.add_todo(TodoCreate(description="urgent", due_date="2020-01-01", priority=5))
    chosen = tracker.add_todo(TodoCreate(description="chosen"))

    claimed = tracker.claim_todo(ClaimRequest(assignee="worker", todo_id=chosen.id))

    assert claimed is not None
    assert claimed.id == chosen.id


def test_claim_scoped_to_tag_subtree(tracker: TaskTracker) -> None:
    tracker.add_todo(TodoCreate(description="outside", tag_path="home", due_date="2020-01-01"))
    inside = tracker.add_todo(TodoCreate(description="inside", tag_path="work/api/v2"))
    work = tracker.resolve_tag_path("work")
    assert work is not None

    by_id = tracker.claim_todo(ClaimRequest(assignee="worker", tag_id=work.id))
    assert by_id is not None
    assert by_id.id == inside.id
    assert tracker.claim_todo(ClaimRequest(assignee="worker", tag_path="work")) is None

    with pytest.raises(NotFoundError):
        tracker.claim_todo(ClaimRequest(assignee="worker", tag_path="missing"))


@pytest.mark.parametrize(
    "request_",
    [
        ClaimRequest(assignee="   "),
        ClaimRequest(assignee="worker", lease_minutes=0),
        ClaimRequest(assignee="worker", todo_id=-1),
    ],
)
def test_claim_rejects_invalid_input(tracker: TaskTracker, request_: ClaimRequest) -> None:
    with pytest.raises(ValidationError):
        tracker.claim_todo(request_)


def test_concurrent_claims_yield_exactly_one_winner(tracker: TaskTracker, db_path: Path) -> None:
    todo = tracker.add_todo(TodoCreate(description="contended"))
    start_event = threading.Event()
    result_queue: queue.Queue[tuple[str, int | None, str]] = queue.Queue()
    threads = [
        threading.Thread(
            target=_run_claim_thread,
            args=(db_path, f"worker-{index}", start_event, result_queue),
            daemon=True,
        )
        for index in range(8)
    ]
    for thread in threads:
        thread.start()
    start_event.set()
    for thread in threads:
        thread.join(timeout=10)
        assert thread.is_alive() is False

    results = [result_queue.get() for _ in threads]
    assert [error for _, _, error in results if error] == []
    winners = [(assignee, claimed_id) for assignee, claimed_id, _ in results if claimed_id]
    assert len(winners) == 1
    assert winners[0][1] == todo.id

    stored = tracker.get_todo(todo.id)
    assert stored is not None
    assert stored.assignee == winners[0][0]
