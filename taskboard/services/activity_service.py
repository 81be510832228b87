from __future__ import annotations

from enum import StrEnum
from typing import Any

from sqlmodel import Session

from taskboard.domain.models import Activity, ActivityType, Task


class ChangeType(StrEnum):
    CREATION = "creation"
    NAME = "name"
    ATTRIBUTE = "attribute"
    ADD_WATCHER = "add_watcher"
    REMOVE_WATCHER = "remove_watcher"


def record_activity(
    session: Session,
    task: Task,
    author_id: str,
    change: dict[str, Any],
) -> Activity:
    """Append an immutable activity to ``task.history``.

    The activity and the task are added to ``session``; committing is left to
    the caller so the record lands together with the mutation it describes.
    """
    activity = Activity(
        type=ActivityType.ACTIVITY,
        author_id=author_id,
        change=dict(change),
        task_id=task.id,
    )
    session.add(activity)
    task.history = [*task.history, activity.id]
    session.add(task)
    return activity


def creation_change() -> dict[str, Any]:
    return {"type": ChangeType.CREATION.value}


def name_change(previous: str, value: str) -> dict[str, Any]:
    return {"type": ChangeType.NAME.value, "from": previous, "to": value}


def attribute_change(column: str, previous: Any, value: Any) -> dict[str, Any]:
    return {"type": ChangeType.ATTRIBUTE.value, "field": column, "from": previous, "to": value}


def watcher_change(change_type: ChangeType, user_id: str) -> dict[str, Any]:
    return {"type": change_type.value, "user": user_id}
