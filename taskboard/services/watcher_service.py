from __future__ import annotations

from taskboard.domain.models import Task


def add_watcher(task: Task, user_id: str) -> bool:
    if user_id in task.watcher:
        return False
    task.watcher = [*task.watcher, user_id]
    return True


def remove_watcher(task: Task, user_id: str) -> bool:
    if user_id not in task.watcher:
        return False
    task.watcher = [item for item in task.watcher if item != user_id]
    return True


def auto_enroll(task: Task, user_id: str) -> None:
    # Editors follow the tasks they touch; this is never recorded as activity.
    add_watcher(task, user_id)
