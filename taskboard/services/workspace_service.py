from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from taskboard.domain.models import (
    Board,
    BoardCreate,
    MemberCreate,
    MemberRead,
    Role,
    User,
    Workspace,
    WorkspaceCreate,
    WorkspaceMember,
)
from taskboard.domain.permissions import ROLE_TEMPLATES, MemberLike, RoleTier, tier_at_least
from taskboard.infra.db import get_engine
from taskboard.services.access_service import (
    WORKSPACE_SLUG_MAX_LENGTH,
    ScopeNotFoundError,
    find_workspace,
    is_workspace_slug,
)


class WorkspaceError(Exception):
    pass


class NotFoundError(WorkspaceError):
    pass


class ConflictError(WorkspaceError):
    pass


class InvalidRequestError(WorkspaceError):
    pass


class PermissionDeniedError(WorkspaceError):
    pass


class WorkspaceService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_workspace(self, session: Session, workspace_ref: str) -> Workspace:
        try:
            return find_workspace(session, workspace_ref)
        except ScopeNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc

    def _get_user(self, session: Session, user_id: str) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def create_workspace(self, actor_id: str, payload: WorkspaceCreate) -> Workspace:
        if not is_workspace_slug(payload.slug):
            raise InvalidRequestError(f"slug must be at most {WORKSPACE_SLUG_MAX_LENGTH} characters")
        with self._session() as session:
            owner = self._get_user(session, actor_id)
            if session.exec(select(Workspace).where(Workspace.slug == payload.slug)).first() is not None:
                raise ConflictError("workspace slug already taken")
            workspace = Workspace(name=payload.name, slug=payload.slug)
            session.add(workspace)
            session.flush()
            for tier, permissions in ROLE_TEMPLATES.items():
                session.add(
                    Role(
                        workspace_id=workspace.id,
                        name=tier,
                        permissions=[item.value for item in permissions],
                    )
                )
            session.flush()
            session.add(WorkspaceMember(workspace_id=workspace.id, user_id=owner.id, is_owner=True))
            owner.workspaces = [*owner.workspaces, workspace.id]
            session.add(owner)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("workspace create conflict") from exc
            session.refresh(workspace)
            return workspace

    def add_member(self, workspace_ref: str, payload: MemberCreate, caller: MemberLike) -> MemberRead:
        # Nobody grants a tier above their own; only owners create owners.
        if not tier_at_least(caller, payload.role):
            raise PermissionDeniedError(f"cannot grant the {payload.role.value} tier")
        with self._session() as session:
            workspace = self._get_workspace(session, workspace_ref)
            user = self._get_user(session, payload.user_id)
            existing = session.exec(
                select(WorkspaceMember)
                .where(WorkspaceMember.workspace_id == workspace.id)
                .where(WorkspaceMember.user_id == user.id)
            ).first()
            if existing is not None:
                raise ConflictError("user is already a workspace member")

            role_id: str | None = None
            if payload.role != RoleTier.OWNER:
                role = session.exec(
                    select(Role).where(Role.workspace_id == workspace.id).where(Role.name == payload.role)
                ).first()
                if role is None:
                    raise NotFoundError(f"role {payload.role} not found")
                role_id = role.id
            member = WorkspaceMember(
                workspace_id=workspace.id,
                user_id=user.id,
                role_id=role_id,
                is_owner=payload.role == RoleTier.OWNER,
            )
            session.add(member)
            if workspace.id not in user.workspaces:
                user.workspaces = [*user.workspaces, workspace.id]
                session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("member create conflict") from exc
            return MemberRead(
                workspace_id=workspace.id,
                user_id=user.id,
                role_id=role_id,
                tier=payload.role,
                is_owner=member.is_owner,
            )

    def create_board(self, workspace_ref: str, payload: BoardCreate) -> Board:
        with self._session() as session:
            workspace = self._get_workspace(session, workspace_ref)
            board = Board(
                workspace_id=workspace.id,
                name=payload.name,
                space=payload.space,
                group_by=payload.group_by,
            )
            session.add(board)
            session.commit()
            session.refresh(board)
            return board

    def get_board(self, board_id: str) -> Board:
        with self._session() as session:
            board = session.get(Board, board_id)
            if board is None:
                raise NotFoundError("board not found")
            return board
