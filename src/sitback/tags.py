"""Hierarchical tag resolution and maintenance."""

from __future__ import annotations

import logging
from collections import defaultdict, deque

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from sitback.errors import DuplicateTagError, NotFoundError, TagCycleError
from sitback.models import (
    UNSET,
    TagDeletion,
    TagForestSummary,
    TagSummary,
    TagTreeNode,
    TagView,
    _Unset,
)
from sitback.storage.common import now_timestamp
from sitback.storage.sqlmodel_models import Tag, Todo
from sitback.validation import normalize_tag_name, normalize_tag_path

logger = logging.getLogger(__name__)


class TagResolver:
    """Tag operations bound to one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, tag_id: int) -> TagView | None:
        row = self.session.get(Tag, tag_id)
        return _to_tag_view(row) if row is not None else None

    def list(self) -> list[TagView]:
        rows = self.session.exec(select(Tag).order_by(col(Tag.id).asc())).all()
        return [_to_tag_view(row) for row in rows]

    def resolve_path(self, path: str) -> TagView | None:
        """Deepest tag matching every segment of ``path``, or ``None``."""

        current: Tag | None = None
        for segment in normalize_tag_path(path):
            current = self._find_child(name=segment, parent_id=current.id if current else None)
            if current is None:
                return None
        return _to_tag_view(current) if current is not None else None

    def ensure_path(self, path: str) -> TagView:
        """Resolve ``path``, creating any missing segment under its parent."""

        current: Tag | None = None
        for segment in normalize_tag_path(path):
            parent_id = current.id if current is not None else None
            existing = self._find_child(name=segment, parent_id=parent_id)
            if existing is None:
                existing = self._insert(name=segment, parent_id=parent_id)
                logger.debug("Created tag %r under parent=%s (id=%s)", segment, parent_id, existing.id)
            current = existing
        if current is None:
            raise RuntimeError(f"Failed to resolve tag path: {path!r}")
        return _to_tag_view(current)

    def add(self, name: str, parent_id: int | None = None) -> TagView:
        normalized = normalize_tag_name(name)
        if parent_id is not None:
            self._require(parent_id, resource="Parent tag")
        if self._find_child(name=normalized, parent_id=parent_id) is not None:
            raise DuplicateTagError(normalized, parent_id)
        return _to_tag_view(self._insert(name=normalized, parent_id=parent_id))

    def update(
        self,
        tag_id: int,
        *,
        name: str | None = None,
        parent_id: int | None | _Unset = UNSET,
    ) -> TagView:
        """Rename and/or reparent a tag.

        All checks run before the row is touched, so a rejected reparent
        leaves the tree unchanged.
        """

        row = self._require(tag_id)
        next_name = normalize_tag_name(name) if name is not None else row.name
        next_parent = row.parent_id if parent_id is UNSET else parent_id

        if next_parent is not None and next_parent != row.parent_id:
            self._require(next_parent, resource="Parent tag")
            if next_parent in self.subtree_ids(tag_id):
                raise TagCycleError(tag_id, next_parent)

        if next_name != row.name or next_parent != row.parent_id:
            sibling = self._find_child(name=next_name, parent_id=next_parent)
            if sibling is not None and sibling.id != tag_id:
                raise DuplicateTagError(next_name, next_parent)

        row.name = next_name
        row.parent_id = next_parent
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as error:
            raise DuplicateTagError(next_name, next_parent) from error
        return _to_tag_view(row)

    def delete(self, tag_id: int) -> TagDeletion:
        """Delete a tag with its descendants; tagged todos become untagged."""

        row = self._require(tag_id)
        deleted_ids = sorted(self.subtree_ids(tag_id))

        cleared = self.session.exec(
            sa_update(Todo)
            .where(col(Todo.tag_id).in_(deleted_ids))
            .values(tag_id=None, updated_at=now_timestamp())
            .execution_options(synchronize_session=False),
        )
        self.session.exec(
            sa_delete(Tag)
            .where(col(Tag.id).in_(deleted_ids))
            .execution_options(synchronize_session=False),
        )
        self.session.expunge(row)
        logger.info(
            "Deleted tag %s (%r) with %d descendants, cleared %d todos",
            tag_id,
            row.name,
            len(deleted_ids) - 1,
            cleared.rowcount,
        )
        return TagDeletion(
            deleted_id=tag_id,
            deleted_name=row.name,
            deleted_tag_ids=deleted_ids,
            cleared_todo_count=cleared.rowcount,
        )

    def subtree_ids(self, tag_id: int) -> set[int]:
        """``tag_id`` plus every descendant, by breadth-first walk."""

        children = self._children_index()
        members = {tag_id}
        pending = deque([tag_id])
        while pending:
            current = pending.popleft()
            for child_id in children.get(current, ()):
                if child_id in members:
                    continue
                members.add(child_id)
                pending.append(child_id)
        return members

    def summary(self, tag_id: int) -> TagSummary | None:
        tag = self.get(tag_id)
        if tag is None:
            return None
        member_ids = self.subtree_ids(tag_id)
        rows = self.session.exec(select(Tag).where(col(Tag.id).in_(member_ids))).all()
        _, nodes_by_id = build_tag_forest([_to_tag_view(row) for row in rows])
        todo_count = self.session.exec(
            select(func.count()).select_from(Todo).where(col(Todo.tag_id).in_(member_ids)),
        ).one()
        return TagSummary(tag=tag, tag_tree=nodes_by_id[tag_id], todo_count=int(todo_count))

    def all_summary(self) -> TagForestSummary:
        roots, _ = build_tag_forest(self.list())
        todo_count = self.session.exec(
            select(func.count()).select_from(Todo).where(col(Todo.tag_id).is_not(None)),
        ).one()
        return TagForestSummary(tag_tree=roots, todo_count=int(todo_count))

    def _require(self, tag_id: int, *, resource: str = "Tag") -> Tag:
        row = self.session.get(Tag, tag_id)
        if row is None:
            raise NotFoundError(resource, tag_id)
        return row

    def _find_child(self, *, name: str, parent_id: int | None) -> Tag | None:
        statement = select(Tag).where(Tag.name == name)
        if parent_id is None:
            statement = statement.where(col(Tag.parent_id).is_(None))
        else:
            statement = statement.where(Tag.parent_id == parent_id)
        return self.session.exec(statement).one_or_none()

    def _insert(self, *, name: str, parent_id: int | None) -> Tag:
        row = Tag(name=name, parent_id=parent_id)
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as error:
            raise DuplicateTagError(name, parent_id) from error
        self.session.refresh(row)
        return row

    def _children_index(self) -> dict[int, list[int]]:
        children: dict[int, list[int]] = defaultdict(list)
        for child_id, parent_id in self.session.exec(select(Tag.id, Tag.parent_id)).all():
            if parent_id is not None and child_id is not None:
                children[parent_id].append(child_id)
        return children


def build_tag_forest(tags: list[TagView]) -> tuple[list[TagTreeNode], dict[int, TagTreeNode]]:
    """Nest tags under their parents; orphans are treated as roots."""

    nodes_by_id = {
        tag.id: TagTreeNode(id=tag.id, name=tag.name, parent_id=tag.parent_id) for tag in tags
    }
    roots: list[TagTreeNode] = []
    for node in nodes_by_id.values():
        parent = nodes_by_id.get(node.parent_id) if node.parent_id is not None else None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
    _sort_nodes(roots)
    return roots, nodes_by_id


def _sort_nodes(nodes: list[TagTreeNode]) -> None:
    nodes.sort(key=lambda node: (node.name, node.id))
    for node in nodes:
        _sort_nodes(node.children)


def _to_tag_view(row: Tag) -> TagView:
    return TagView(id=row.id or 0, name=row.name, parent_id=row.parent_id)
