from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from loguru import logger
from sqlmodel import Session, select

from taskboard.domain.models import (
    Activity,
    ActivityRead,
    Board,
    BoardRef,
    Comment,
    CommentCreate,
    CommentRead,
    CurrentUser,
    PopulatedTaskRead,
    Task,
    TaskCreate,
    TaskEditRequest,
    TaskEditType,
    TaskMoveRequest,
    TaskRead,
    User,
    UserRef,
    Workspace,
    WorkspaceRef,
)
from taskboard.infra.db import get_engine
from taskboard.services import watcher_service
from taskboard.services.access_service import ScopeNotFoundError, find_workspace
from taskboard.services.activity_service import (
    ChangeType,
    attribute_change,
    creation_change,
    name_change,
    record_activity,
    watcher_change,
)
from taskboard.services.option_ledger import clear_option, set_option
from taskboard.services.task_tree_service import ConflictError, NotFoundError, TaskTreeStore


class InvalidRequestError(Exception):
    pass


@dataclass(frozen=True)
class Broadcast:
    board_id: str
    event: str
    body: dict[str, Any]


class TaskService:
    _SCALAR_FILTER_KEYS: ClassVar[set[str]] = {
        "id",
        "name",
        "description",
        "board_id",
        "parent_task_id",
        "level",
    }
    _OPTION_EDIT_TYPES: ClassVar[set[TaskEditType]] = {
        TaskEditType.STATUS,
        TaskEditType.TEXT,
        TaskEditType.PERSON,
    }

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _store(self, session: Session) -> TaskTreeStore:
        return TaskTreeStore(session)

    @staticmethod
    def _task_body(task: Task) -> dict[str, Any]:
        return TaskRead.model_validate(task).model_dump(mode="json")

    def _get_user(self, session: Session, user_id: str) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def add_watcher(self, actor: CurrentUser, task_id: str, user_id: str) -> Broadcast:
        with self._session() as session:
            task = self._store(session).get_task(task_id)
            user = self._get_user(session, user_id)
            if watcher_service.add_watcher(task, user.id):
                record_activity(session, task, actor.id, watcher_change(ChangeType.ADD_WATCHER, user.id))
            session.add(task)
            session.commit()
            return Broadcast(
                board_id=task.board_id,
                event="addWatcher",
                body={"task": self._task_body(task), "user": {"username": user.username, "id": user.id}},
            )

    def remove_watcher(self, actor: CurrentUser, task_id: str, user_id: str) -> Broadcast:
        with self._session() as session:
            task = self._store(session).get_task(task_id)
            user = self._get_user(session, user_id)
            if watcher_service.remove_watcher(task, user.id):
                record_activity(session, task, actor.id, watcher_change(ChangeType.REMOVE_WATCHER, user.id))
            session.add(task)
            session.commit()
            return Broadcast(
                board_id=task.board_id,
                event="removeWatcher",
                body={"task": self._task_body(task), "user": {"username": user.username, "id": user.id}},
            )

    def edit_task(
        self,
        actor: CurrentUser,
        board_id: str,
        task_id: str,
        payload: TaskEditRequest,
    ) -> Broadcast:
        if payload.type in self._OPTION_EDIT_TYPES and not payload.column:
            raise InvalidRequestError(f"column is required for {payload.type} edits")
        if payload.type == TaskEditType.NAME and (payload.value is None or not str(payload.value).strip()):
            raise InvalidRequestError("task name must not be empty")
        with self._session() as session:
            task = self._store(session).get_task(task_id, board_id=board_id)
            watcher_service.auto_enroll(task, actor.id)

            if payload.type == TaskEditType.NAME:
                value = str(payload.value)
                if value != task.name:
                    record_activity(session, task, actor.id, name_change(task.name, value))
                task.name = value
            elif payload.type == TaskEditType.DESCRIPTION:
                task.description = "" if payload.value is None else str(payload.value)
            else:
                column = str(payload.column)
                change = set_option(task, column, payload.value)
                # Only status transitions are audited; text and person edits are stored silently.
                if payload.type == TaskEditType.STATUS and change.changed:
                    record_activity(session, task, actor.id, attribute_change(column, change.previous, payload.value))

            session.add(task)
            session.commit()
        return Broadcast(
            board_id=board_id,
            event="editOptionsTask",
            body={
                "column": payload.column,
                "value": payload.value,
                "type": payload.type.value,
                "task_id": task_id,
            },
        )

    def clear_option(self, actor: CurrentUser, board_id: str, task_id: str, option_id: str) -> Broadcast:
        with self._session() as session:
            task = self._store(session).get_task(task_id, board_id=board_id)
            watcher_service.auto_enroll(task, actor.id)
            change = clear_option(task, option_id)
            if change.existed:
                record_activity(session, task, actor.id, attribute_change(option_id, change.previous, None))
            session.add(task)
            session.commit()
        return Broadcast(
            board_id=board_id,
            event="clearStatusTask",
            body={"task_id": task_id, "option_id": option_id},
        )

    def add_subtask(self, actor: CurrentUser, board_id: str, task_id: str, payload: TaskCreate) -> Task:
        with self._session() as session:
            store = self._store(session)
            parent = store.get_task(task_id, board_id=board_id)
            subtask = store.insert_child(parent, name=payload.name, task_id=payload.id)
            watcher_service.auto_enroll(subtask, actor.id)
            record_activity(session, subtask, actor.id, creation_change())
            session.commit()
            session.refresh(subtask)
        logger.info("subtask {} created under {} on board {} by {}", subtask.id, task_id, board_id, actor.id)
        return subtask

    def move_task(self, actor: CurrentUser, board_id: str, payload: TaskMoveRequest) -> None:
        with self._session() as session:
            store = self._store(session)
            store.get_board(board_id)
            task = store.get_task(payload.task_id, board_id=board_id)
            new_parent = None
            if payload.new_parent_task:
                new_parent = store.get_task(payload.new_parent_task, board_id=board_id)
            store.move(task, new_parent, payload.over_id)
        logger.info("task {} reordered on board {} by {}", payload.task_id, board_id, actor.id)

    def add_task(self, actor: CurrentUser, board_id: str, payload: TaskCreate) -> tuple[Task, Broadcast]:
        with self._session() as session:
            store = self._store(session)
            board = store.get_board(board_id)
            task = store.insert_root(
                board,
                name=payload.name,
                task_id=payload.id,
                watcher=[actor.id],
                group_value=payload.task_group_id,
            )
            record_activity(session, task, actor.id, creation_change())
            session.commit()
            session.refresh(task)
        logger.info("task {} created on board {} by {}", task.id, board_id, actor.id)
        return task, Broadcast(
            board_id=board_id,
            event="addTask",
            body={
                "new_task_name": payload.name,
                "task_group_id": payload.task_group_id,
                "id": task.id,
                "author": actor.username,
            },
        )

    def delete_task(self, actor: CurrentUser, board_id: str, task_id: str) -> Broadcast:
        with self._session() as session:
            store = self._store(session)
            task = store.get_task(task_id, board_id=board_id)
            removed = store.remove(task)
            session.commit()
        logger.info("task(s) {} deleted from board {} by {}", removed, board_id, actor.id)
        return Broadcast(board_id=board_id, event="deleteTask", body={"task_id": task_id})

    def add_comment(self, actor: CurrentUser, task_id: str, payload: CommentCreate) -> Broadcast:
        with self._session() as session:
            task = self._store(session).get_task(task_id)
            comment = Comment(author_id=actor.id, content=payload.content, task_id=task.id)
            if payload.reply_to:
                parent = session.get(Comment, payload.reply_to)
                if parent is None or parent.task_id != task.id:
                    raise NotFoundError("comment not found")
                parent.replies = [*parent.replies, comment.id]
                session.add(parent)
            else:
                task.comments = [*task.comments, comment.id]
            watcher_service.auto_enroll(task, actor.id)
            session.add(comment)
            session.add(task)
            session.commit()
            session.refresh(comment)
            return Broadcast(
                board_id=task.board_id,
                event="addComment",
                body={
                    "task_id": task.id,
                    "reply_to": payload.reply_to,
                    "comment": CommentRead.model_validate(comment).model_dump(mode="json"),
                },
            )

    def _validate_filter(self, task_filter: dict[str, Any]) -> None:
        for key, expected in task_filter.items():
            if key in self._SCALAR_FILTER_KEYS or key == "watcher":
                continue
            if key == "options":
                if not isinstance(expected, dict):
                    raise InvalidRequestError("options filter must be an object")
                continue
            raise InvalidRequestError(f"unsupported filter key: {key}")

    def _matches(self, task: Task, task_filter: dict[str, Any]) -> bool:
        for key, expected in task_filter.items():
            if key == "watcher":
                if expected not in task.watcher:
                    return False
            elif key == "options":
                if not any(
                    all(option.get(name) == value for name, value in expected.items())
                    for option in task.options
                ):
                    return False
            elif getattr(task, key) != expected:
                return False
        return True

    def _comment_tree(self, session: Session, comment_ids: list[str]) -> list[CommentRead]:
        rows: list[CommentRead] = []
        for comment_id in comment_ids:
            comment = session.get(Comment, comment_id)
            if comment is None:
                continue
            replies = self._comment_tree(session, comment.replies)
            rows.append(
                CommentRead(
                    id=comment.id,
                    author_id=comment.author_id,
                    content=comment.content,
                    ts=comment.ts,
                    task_id=comment.task_id,
                    replies=replies,
                )
            )
        return rows

    def _populate(self, session: Session, task: Task) -> PopulatedTaskRead:
        watchers: list[UserRef] = []
        for user_id in task.watcher:
            user = session.get(User, user_id)
            if user is not None:
                watchers.append(UserRef(id=user.id, username=user.username))
        history = [
            ActivityRead.model_validate(activity)
            for activity in (session.get(Activity, activity_id) for activity_id in task.history)
            if activity is not None
        ]
        workspace = session.get(Workspace, task.workspace_id)
        board = session.get(Board, task.board_id)
        return PopulatedTaskRead(
            id=task.id,
            name=task.name,
            description=task.description,
            parent_task_id=task.parent_task_id,
            level=task.level,
            subtasks=list(task.subtasks),
            options=list(task.options),
            watcher=watchers,
            history=history,
            comments=self._comment_tree(session, task.comments),
            workspace=WorkspaceRef(id=workspace.id, slug=workspace.slug, name=workspace.name) if workspace else None,
            board=BoardRef(id=board.id, name=board.name, space=board.space) if board else None,
            created_at=task.created_at,
        )

    def list_filtered(self, workspace_ref: str, task_filter: dict[str, Any]) -> list[PopulatedTaskRead]:
        self._validate_filter(task_filter)
        with self._session() as session:
            try:
                workspace = find_workspace(session, workspace_ref)
            except ScopeNotFoundError as exc:
                raise NotFoundError(str(exc)) from exc
            rows = list(session.exec(select(Task).where(Task.workspace_id == workspace.id)).all())
            matched = [task for task in rows if self._matches(task, task_filter)]
            return [self._populate(session, task) for task in matched]

    def get_task(self, board_id: str, task_id: str) -> PopulatedTaskRead:
        with self._session() as session:
            task = self._store(session).get_task(task_id, board_id=board_id)
            return self._populate(session, task)

