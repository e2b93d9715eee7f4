"""Whole-database export as a tag forest plus a todo dependency forest."""

from __future__ import annotations

from sqlmodel import Session

from sitback.dependencies import DependencyGraph
from sitback.models import ExportTodoNode, ExportTree, TodoQuery, TodoSortField
from sitback.queries import TodoQueryEngine
from sitback.tags import TagResolver, build_tag_forest


def build_export_tree(session: Session) -> ExportTree:
    """Snapshot every tag and todo.

    Todos without predecessors are roots; a successor appears under each of
    its predecessors, so a node with several predecessors is shared.
    """

    tag_roots, _ = build_tag_forest(TagResolver(session).list())
    todos = TodoQueryEngine(session).list_todos(TodoQuery(sort_by=TodoSortField.ID, limit=None))

    nodes = {
        todo.id: ExportTodoNode(
            id=todo.id,
            description=todo.description,
            status=todo.status,
            tag_id=todo.tag_id,
            assignee=todo.assignee,
            work_notes=todo.work_notes,
            priority=todo.priority,
            due_date=todo.due_date,
            created_at=todo.created_at,
            updated_at=todo.updated_at,
            is_blocked=todo.is_blocked,
        )
        for todo in todos
    }
    for successor_id, predecessor_id in DependencyGraph(session).edges():
        successor = nodes.get(successor_id)
        predecessor = nodes.get(predecessor_id)
        if successor is None or predecessor is None:
            continue
        successor.predecessor_ids.append(predecessor_id)
        predecessor.children.append(successor)

    for node in nodes.values():
        node.predecessor_ids.sort()
        node.children.sort(key=lambda child: child.id)
    roots = sorted(
        (node for node in nodes.values() if not node.predecessor_ids),
        key=lambda node: node.id,
    )
    return ExportTree(tag_tree=tag_roots, todo_tree=roots)
