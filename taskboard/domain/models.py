from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from taskboard.domain.permissions import RoleTier


def now_utc() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid4())


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=new_id, primary_key=True)
    actor_id: str | None = Field(default=None, index=True)
    action: str
    resource: str
    method: str
    status_code: int
    ts: datetime = Field(default_factory=now_utc, index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    workspaces: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    assigned_tasks: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    new_notifications: int = Field(default=0)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Workspace(SQLModel, table=True):
    __tablename__ = "workspaces"

    id: str = Field(default_factory=new_id, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str = Field(index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Role(SQLModel, table=True):
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_roles_workspace_name"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    workspace_id: str = Field(foreign_key="workspaces.id", index=True)
    name: RoleTier = Field(index=True)
    permissions: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(default_factory=now_utc, index=True)


class WorkspaceMember(SQLModel, table=True):
    __tablename__ = "workspace_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_members_workspace_user"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    workspace_id: str = Field(foreign_key="workspaces.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    role_id: str | None = Field(default=None, foreign_key="roles.id", index=True)
    is_owner: bool = Field(default=False)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Board(SQLModel, table=True):
    __tablename__ = "boards"

    id: str = Field(default_factory=new_id, primary_key=True)
    workspace_id: str = Field(foreign_key="workspaces.id", index=True)
    name: str
    space: str | None = None
    group_by: str | None = None
    tasks: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    description: str = Field(default="")
    board_id: str = Field(foreign_key="boards.id", index=True)
    workspace_id: str = Field(foreign_key="workspaces.id", index=True)
    parent_task_id: str | None = Field(default=None, index=True)
    level: int = Field(default=0)
    subtasks: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    options: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    watcher: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    comments: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    history: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(default_factory=now_utc, index=True)


class ActivityType(StrEnum):
    ACTIVITY = "activity"
    COMMENT = "comment"


class Activity(SQLModel, table=True):
    __tablename__ = "activities"

    id: str = Field(default_factory=new_id, primary_key=True)
    type: ActivityType = Field(default=ActivityType.ACTIVITY)
    author_id: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    change: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    task_id: str = Field(index=True)


class Comment(SQLModel, table=True):
    __tablename__ = "comments"

    id: str = Field(default_factory=new_id, primary_key=True)
    type: ActivityType = Field(default=ActivityType.COMMENT)
    author_id: str = Field(index=True)
    content: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    ts: datetime = Field(default_factory=now_utc, index=True)
    task_id: str = Field(index=True)
    replies: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ActionResult(BaseModel):
    success: bool = True
    message: str = "OK"


class CurrentUser(ORMReadModel):
    id: str
    username: str
    workspaces: list[str]
    assigned_tasks: list[str]
    new_notifications: int


class UserCreate(BaseModel):
    username: str = PydanticField(min_length=1)
    password: str = PydanticField(min_length=1)


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRead(ORMReadModel):
    id: str
    username: str
    workspaces: list[str]
    assigned_tasks: list[str]
    new_notifications: int
    created_at: datetime


class WorkspaceCreate(BaseModel):
    name: str = PydanticField(min_length=1)
    slug: str = PydanticField(min_length=1)


class WorkspaceRead(ORMReadModel):
    id: str
    slug: str
    name: str
    created_at: datetime


class MemberCreate(BaseModel):
    user_id: str
    role: RoleTier = RoleTier.MEMBER


class MemberRead(BaseModel):
    workspace_id: str
    user_id: str
    role_id: str | None
    tier: RoleTier
    is_owner: bool


class BoardCreate(BaseModel):
    name: str = PydanticField(min_length=1)
    space: str | None = None
    group_by: str | None = None


class BoardRead(ORMReadModel):
    id: str
    workspace_id: str
    name: str
    space: str | None
    group_by: str | None
    tasks: list[str]
    created_at: datetime


class TaskCreate(BaseModel):
    id: str | None = None
    name: str = PydanticField(min_length=1)
    task_group_id: Any = None


class TaskEditType(StrEnum):
    NAME = "name"
    DESCRIPTION = "description"
    STATUS = "status"
    TEXT = "text"
    PERSON = "person"


class TaskEditRequest(BaseModel):
    type: TaskEditType
    column: str | None = None
    value: Any = None


class TaskMoveRequest(BaseModel):
    task_id: str
    new_parent_task: str | None = None
    index: int | None = None
    over_id: str | None = None


class WatcherRequest(BaseModel):
    user_id: str


class AssignedTasksQuery(BaseModel):
    filter: dict[str, Any] = PydanticField(default_factory=dict)


class CommentCreate(BaseModel):
    content: Any
    reply_to: str | None = None


class TaskRead(ORMReadModel):
    id: str
    name: str
    description: str
    board_id: str
    workspace_id: str
    parent_task_id: str | None
    level: int
    subtasks: list[str]
    options: list[dict[str, Any]]
    watcher: list[str]
    comments: list[str]
    history: list[str]
    created_at: datetime


class UserRef(BaseModel):
    id: str
    username: str


class ActivityRead(ORMReadModel):
    id: str
    type: ActivityType
    author_id: str
    ts: datetime
    change: dict[str, Any]
    task_id: str


class CommentRead(ORMReadModel):
    id: str
    author_id: str
    content: Any
    ts: datetime
    task_id: str
    replies: list[CommentRead] = PydanticField(default_factory=list)


class WorkspaceRef(BaseModel):
    id: str
    slug: str
    name: str


class BoardRef(BaseModel):
    id: str
    name: str
    space: str | None


class PopulatedTaskRead(BaseModel):
    id: str
    name: str
    description: str
    parent_task_id: str | None
    level: int
    subtasks: list[str]
    options: list[dict[str, Any]]
    watcher: list[UserRef]
    history: list[ActivityRead]
    comments: list[CommentRead]
    workspace: WorkspaceRef | None
    board: BoardRef | None
    created_at: datetime
