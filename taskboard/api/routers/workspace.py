from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from taskboard.api.deps import get_current_user, require_capability, require_tier
from taskboard.domain.models import (
    BoardCreate,
    BoardRead,
    CurrentUser,
    MemberCreate,
    MemberRead,
    WorkspaceCreate,
    WorkspaceRead,
)
from taskboard.domain.permissions import Permission, RoleTier
from taskboard.infra.audit import set_audit_context
from taskboard.services.access_service import ResolvedMember
from taskboard.services.workspace_service import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    WorkspaceService,
)

router = APIRouter()


def get_workspace_service() -> WorkspaceService:
    return WorkspaceService()


Actor = Annotated[CurrentUser, Depends(get_current_user)]
Service = Annotated[WorkspaceService, Depends(get_workspace_service)]

WORKSPACE_ERRORS = (NotFoundError, ConflictError, InvalidRequestError, PermissionDeniedError)


def _handle_workspace_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, PermissionDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, InvalidRequestError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.post("", response_model=WorkspaceRead, status_code=status.HTTP_201_CREATED)
def create_workspace(payload: WorkspaceCreate, request: Request, actor: Actor, service: Service) -> WorkspaceRead:
    set_audit_context(request, action="workspace.create", what={"slug": payload.slug})
    try:
        workspace = service.create_workspace(actor.id, payload)
        return WorkspaceRead.model_validate(workspace)
    except WORKSPACE_ERRORS as exc:
        _handle_workspace_error(exc)
        raise


@router.post(
    "/{workspace_id}/members",
    response_model=MemberRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Permission.MANAGE_MEMBER))],
)
def add_member(
    workspace_id: str,
    payload: MemberCreate,
    request: Request,
    caller: Annotated[ResolvedMember, Depends(require_tier(RoleTier.ADMIN))],
    service: Service,
) -> MemberRead:
    set_audit_context(
        request,
        action="workspace.member.add",
        resource=workspace_id,
        what={"user_id": payload.user_id, "role": payload.role.value},
    )
    try:
        return service.add_member(workspace_id, payload, caller)
    except WORKSPACE_ERRORS as exc:
        _handle_workspace_error(exc)
        raise


@router.post(
    "/{workspace_id}/boards",
    response_model=BoardRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Permission.MANAGE_BOARD))],
)
def create_board(workspace_id: str, payload: BoardCreate, request: Request, service: Service) -> BoardRead:
    set_audit_context(request, action="board.create", resource=workspace_id, what={"name": payload.name})
    try:
        board = service.create_board(workspace_id, payload)
        return BoardRead.model_validate(board)
    except WORKSPACE_ERRORS as exc:
        _handle_workspace_error(exc)
        raise
