"""Per-task attribute-column values.

A task carries at most one ``{"column", "value"}`` entry per column. The
ledger reports whether a write was a real transition so callers can decide
whether it deserves an activity record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from taskboard.domain.models import Task


@dataclass(frozen=True)
class OptionChange:
    changed: bool
    previous: Any = None
    existed: bool = True


def find_option(task: Task, column: str) -> dict[str, Any] | None:
    for item in task.options:
        if str(item.get("column")) == column:
            return item
    return None


def set_option(task: Task, column: str, value: Any) -> OptionChange:
    # JSON columns are only flushed on reassignment, never on in-place edits.
    options = [dict(item) for item in task.options]
    for item in options:
        if str(item.get("column")) == column:
            previous = item.get("value")
            item["value"] = value
            task.options = options
            return OptionChange(changed=previous != value, previous=previous)
    options.append({"column": column, "value": value})
    task.options = options
    return OptionChange(changed=True, previous=None, existed=False)


def clear_option(task: Task, column: str) -> OptionChange:
    existing = find_option(task, column)
    if existing is None:
        return OptionChange(changed=False, previous=None, existed=False)
    task.options = [dict(item) for item in task.options if str(item.get("column")) != column]
    return OptionChange(changed=True, previous=existing.get("value"))
