from __future__ import annotations

import os
from dataclasses import dataclass, field

from sqlmodel import Session, select

from taskboard.domain.models import Board, Role, Task, Workspace, WorkspaceMember
from taskboard.domain.permissions import Permission, RoleTier
from taskboard.infra.db import get_engine

WORKSPACE_SLUG_MAX_LENGTH = int(os.getenv("WORKSPACE_SLUG_MAX_LENGTH", "4"))


class AccessError(Exception):
    pass


class ScopeNotFoundError(AccessError):
    pass


class MembershipNotFoundError(AccessError):
    pass


@dataclass(frozen=True)
class Scope:
    board_id: str | None = None
    workspace_id: str | None = None
    task_id: str | None = None


@dataclass(frozen=True)
class ResolvedMember:
    workspace_id: str
    user_id: str
    is_owner: bool
    tier: RoleTier
    permissions: list[str] = field(default_factory=list)


def is_workspace_slug(workspace_ref: str) -> bool:
    return len(workspace_ref) <= WORKSPACE_SLUG_MAX_LENGTH


def find_workspace(session: Session, workspace_ref: str) -> Workspace:
    """Look up a workspace by primary key, or by slug for short refs."""
    if is_workspace_slug(workspace_ref):
        workspace = session.exec(select(Workspace).where(Workspace.slug == workspace_ref)).first()
    else:
        workspace = session.get(Workspace, workspace_ref)
    if workspace is None:
        raise ScopeNotFoundError("workspace not found")
    return workspace


class AccessService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _scope_workspace_id(self, session: Session, scope: Scope) -> str:
        if scope.board_id:
            board = session.get(Board, scope.board_id)
            if board is None:
                raise ScopeNotFoundError("board not found")
            return board.workspace_id
        if scope.workspace_id:
            return find_workspace(session, scope.workspace_id).id
        if scope.task_id:
            task = session.get(Task, scope.task_id)
            if task is None:
                raise ScopeNotFoundError("task not found")
            return task.workspace_id
        raise ScopeNotFoundError("request carries no board, workspace or task scope")

    def resolve_member(self, scope: Scope, user_id: str) -> ResolvedMember:
        with self._session() as session:
            workspace_id = self._scope_workspace_id(session, scope)
            member = session.exec(
                select(WorkspaceMember)
                .where(WorkspaceMember.workspace_id == workspace_id)
                .where(WorkspaceMember.user_id == user_id)
            ).first()
            if member is None:
                raise MembershipNotFoundError(f"user {user_id} is not a member of workspace {workspace_id}")
            if member.is_owner:
                return ResolvedMember(
                    workspace_id=workspace_id,
                    user_id=user_id,
                    is_owner=True,
                    tier=RoleTier.OWNER,
                    permissions=[item.value for item in Permission],
                )
            role = session.get(Role, member.role_id) if member.role_id else None
            if role is None:
                return ResolvedMember(
                    workspace_id=workspace_id,
                    user_id=user_id,
                    is_owner=False,
                    tier=RoleTier.GUEST,
                    permissions=[],
                )
            return ResolvedMember(
                workspace_id=workspace_id,
                user_id=user_id,
                is_owner=False,
                tier=RoleTier(role.name),
                permissions=list(role.permissions),
            )
