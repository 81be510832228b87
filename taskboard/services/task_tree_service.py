"""Structural mutations of a board's task tree.

A board keeps its root task ids in ``Board.tasks``; every task keeps its
children in ``Task.subtasks``. A task id lives in exactly one of those
sequences. Containers are read, modified in memory and written back without
any version check, so concurrent writers to the same container race and the
last commit wins.
"""

from __future__ import annotations

import os
from enum import StrEnum
from typing import Any

from loguru import logger
from sqlmodel import Session

from taskboard.domain.models import Board, Task


class DeleteCascade(StrEnum):
    ORPHAN = "orphan"
    DELETE = "delete"
    REATTACH = "reattach"


class LevelPolicy(StrEnum):
    RECOMPUTE = "recompute"
    PRESERVE = "preserve"


TASK_DELETE_CASCADE = DeleteCascade(os.getenv("TASK_DELETE_CASCADE", DeleteCascade.ORPHAN.value))
TASK_MOVE_LEVEL_POLICY = LevelPolicy(os.getenv("TASK_MOVE_LEVEL_POLICY", LevelPolicy.RECOMPUTE.value))


class TaskTreeError(Exception):
    pass


class NotFoundError(TaskTreeError):
    pass


class ConflictError(TaskTreeError):
    pass


def insert_before(sequence: list[str], item_id: str, anchor_id: str | None) -> list[str]:
    """Return ``sequence`` with ``item_id`` placed before ``anchor_id``.

    An absent or unknown anchor appends to the end.
    """
    result = [item for item in sequence if item != item_id]
    if anchor_id is not None and anchor_id in result:
        result.insert(result.index(anchor_id), item_id)
    else:
        result.append(item_id)
    return result


def _replace(sequence: list[str], item_id: str, replacement: list[str]) -> list[str]:
    result: list[str] = []
    for item in sequence:
        if item == item_id:
            result.extend(replacement)
        else:
            result.append(item)
    return result


class TaskTreeStore:
    def __init__(
        self,
        session: Session,
        *,
        cascade: DeleteCascade | None = None,
        level_policy: LevelPolicy | None = None,
    ) -> None:
        self.session = session
        self.cascade = cascade or TASK_DELETE_CASCADE
        self.level_policy = level_policy or TASK_MOVE_LEVEL_POLICY

    def get_board(self, board_id: str) -> Board:
        board = self.session.get(Board, board_id)
        if board is None:
            raise NotFoundError("board not found")
        return board

    def get_task(self, task_id: str, board_id: str | None = None) -> Task:
        task = self.session.get(Task, task_id)
        if task is None:
            raise NotFoundError("task not found")
        if board_id is not None and task.board_id != board_id:
            raise NotFoundError("task not found")
        return task

    def _ensure_new_id(self, task_id: str | None) -> None:
        if task_id is not None and self.session.get(Task, task_id) is not None:
            raise ConflictError(f"task {task_id} already exists")

    def insert_root(
        self,
        board: Board,
        *,
        name: str,
        task_id: str | None = None,
        watcher: list[str] | None = None,
        group_value: Any = None,
    ) -> Task:
        self._ensure_new_id(task_id)
        fields: dict[str, Any] = {}
        if task_id is not None:
            fields["id"] = task_id
        task = Task(
            **fields,
            name=name,
            description="",
            board_id=board.id,
            workspace_id=board.workspace_id,
            parent_task_id=None,
            level=0,
            watcher=list(watcher or []),
        )
        if board.group_by:
            task.options = [{"column": board.group_by, "value": group_value}]
        board.tasks = [*board.tasks, task.id]
        self.session.add(task)
        self.session.add(board)
        return task

    def insert_child(self, parent: Task, *, name: str, task_id: str | None = None) -> Task:
        self._ensure_new_id(task_id)
        fields: dict[str, Any] = {}
        if task_id is not None:
            fields["id"] = task_id
        task = Task(
            **fields,
            name=name,
            description="",
            board_id=parent.board_id,
            workspace_id=parent.workspace_id,
            parent_task_id=parent.id,
            level=parent.level + 1,
            watcher=list(parent.watcher),
        )
        parent.subtasks = [*parent.subtasks, task.id]
        self.session.add(task)
        self.session.add(parent)
        return task

    def _ensure_valid_parent(self, task: Task, new_parent: Task) -> None:
        if new_parent.board_id != task.board_id:
            raise ConflictError("cannot move a task to another board")
        seen: set[str] = set()
        node: Task | None = new_parent
        while node is not None and node.id not in seen:
            if node.id == task.id:
                raise ConflictError("cannot move a task under itself or its descendants")
            seen.add(node.id)
            node = self.session.get(Task, node.parent_task_id) if node.parent_task_id else None

    def _detach(self, task: Task, board: Board) -> str:
        """Remove ``task`` from its current container and return the container id."""
        if task.parent_task_id:
            old_parent = self.session.get(Task, task.parent_task_id)
            if old_parent is not None:
                old_parent.subtasks = [item for item in old_parent.subtasks if item != task.id]
                self.session.add(old_parent)
            return task.parent_task_id
        board.tasks = [item for item in board.tasks if item != task.id]
        self.session.add(board)
        return board.id

    def _relevel(self, task: Task, level: int) -> None:
        stack: list[tuple[Task, int]] = [(task, level)]
        seen: set[str] = set()
        while stack:
            node, node_level = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            node.level = node_level
            self.session.add(node)
            for child_id in node.subtasks:
                child = self.session.get(Task, child_id)
                if child is not None:
                    stack.append((child, node_level + 1))

    def move(self, task: Task, new_parent: Task | None, anchor_id: str | None) -> None:
        board = self.get_board(task.board_id)
        if new_parent is not None:
            self._ensure_valid_parent(task, new_parent)

        source_id = self._detach(task, board)
        self.session.commit()

        destination_id = new_parent.id if new_parent is not None else board.id
        try:
            task.parent_task_id = new_parent.id if new_parent is not None else None
            if new_parent is not None:
                new_parent.subtasks = insert_before(new_parent.subtasks, task.id, anchor_id)
                self.session.add(new_parent)
            else:
                board.tasks = insert_before(board.tasks, task.id, anchor_id)
                self.session.add(board)
            if self.level_policy == LevelPolicy.RECOMPUTE:
                self._relevel(task, new_parent.level + 1 if new_parent is not None else 0)
            self.session.add(task)
            self.session.commit()
        except Exception:
            logger.error(
                "task {} detached from {} but not inserted into {}; it is now in no container",
                task.id,
                source_id,
                destination_id,
            )
            raise
        logger.info("task {} moved from {} to {}", task.id, source_id, destination_id)

    def _descendants(self, task: Task) -> list[Task]:
        found: list[Task] = []
        seen: set[str] = {task.id}
        pending = list(task.subtasks)
        while pending:
            child_id = pending.pop()
            if child_id in seen:
                continue
            seen.add(child_id)
            child = self.session.get(Task, child_id)
            if child is None:
                continue
            found.append(child)
            pending.extend(child.subtasks)
        return found

    def remove(self, task: Task) -> list[str]:
        """Detach and delete ``task``; returns the ids of every deleted task."""
        board = self.get_board(task.board_id)
        parent = self.session.get(Task, task.parent_task_id) if task.parent_task_id else None
        replacement: list[str] = []

        if self.cascade == DeleteCascade.REATTACH:
            replacement = list(task.subtasks)
            child_level = parent.level + 1 if parent is not None else 0
            for child_id in replacement:
                child = self.session.get(Task, child_id)
                if child is None:
                    continue
                child.parent_task_id = parent.id if parent is not None else None
                self._relevel(child, child_level)

        if parent is not None:
            parent.subtasks = _replace(parent.subtasks, task.id, replacement)
            self.session.add(parent)
        elif task.parent_task_id is None:
            board.tasks = _replace(board.tasks, task.id, replacement)
            self.session.add(board)
        elif replacement:
            # The old parent is gone, so the reattached children become roots.
            board.tasks = [*board.tasks, *replacement]
            self.session.add(board)

        removed = [task.id]
        if self.cascade == DeleteCascade.DELETE:
            for descendant in self._descendants(task):
                removed.append(descendant.id)
                self.session.delete(descendant)
        self.session.delete(task)
        return removed
