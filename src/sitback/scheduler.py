"""Atomic claim of the next actionable todo."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy import update as sa_update
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from sitback.dependencies import blocked_expression
from sitback.models import CLAIMABLE_STATUSES, TodoStatus
from sitback.storage.common import format_timestamp, lease_deadline, utc_now
from sitback.storage.sqlmodel_models import FAR_FUTURE_DATE, Todo

logger = logging.getLogger(__name__)


def claim_order(entity: Any) -> list[Any]:
    """Earliest due date first, then highest priority, then lowest id."""

    return [
        func.coalesce(entity.due_date, FAR_FUTURE_DATE).asc(),
        func.coalesce(entity.priority, 0).desc(),
        entity.id.asc(),
    ]


def claim_eligibility(
    entity: Any,
    *,
    now: str,
    todo_id: int | None = None,
    tag_ids: Iterable[int] | None = None,
) -> list[Any]:
    """Predicates a row must satisfy to be claimable at ``now``."""

    clauses = [
        entity.status.in_([status.value for status in CLAIMABLE_STATUSES]),
        ~blocked_expression(entity.id),
        or_(entity.assignee.is_(None), entity.assignee_lease <= now),
    ]
    if todo_id is not None:
        clauses.append(entity.id == todo_id)
    if tag_ids is not None:
        clauses.append(entity.tag_id.in_(sorted(tag_ids)))
    return clauses


class ClaimScheduler:
    """Claims todos for an assignee with a time-bounded lease."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def claim(
        self,
        *,
        assignee: str,
        lease_minutes: int,
        todo_id: int | None = None,
        tag_ids: Iterable[int] | None = None,
        now: datetime | None = None,
    ) -> int | None:
        """Claim one eligible todo and return its id, or ``None``.

        Candidate selection and the write are a single conditional UPDATE,
        and the eligibility predicates are re-applied to the target row, so
        two claimers can never both take the same todo.
        """

        current = now or utc_now()
        now_text = format_timestamp(current)
        scope = set(tag_ids) if tag_ids is not None else None

        candidate = aliased(Todo, name="c")
        candidate_id = (
            select(candidate.id)
            .where(*claim_eligibility(candidate, now=now_text, todo_id=todo_id, tag_ids=scope))
            .order_by(*claim_order(candidate))
            .limit(1)
            .scalar_subquery()
        )
        result = self.session.exec(
            sa_update(Todo)
            .where(
                Todo.id == candidate_id,
                *claim_eligibility(Todo, now=now_text, todo_id=todo_id, tag_ids=scope),
            )
            .values(
                status=TodoStatus.IN_PROGRESS.value,
                assignee=assignee,
                assignee_lease=lease_deadline(minutes=lease_minutes, now=current),
                updated_at=now_text,
            )
            .returning(Todo.id)
            .execution_options(synchronize_session=False),
        )
        claimed_id = result.scalar_one_or_none()
        if claimed_id is None:
            logger.debug("No claimable todo for %s (todo_id=%s)", assignee, todo_id)
            return None
        logger.info("Todo %s claimed by %s for %d minutes", claimed_id, assignee, lease_minutes)
        return claimed_id
