from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from loguru import logger
from starlette.concurrency import run_in_threadpool

from taskboard.api.deps import get_current_user, require_capability
from taskboard.domain.models import (
    ActionResult,
    AssignedTasksQuery,
    CommentCreate,
    CurrentUser,
    PopulatedTaskRead,
    TaskCreate,
    TaskEditRequest,
    TaskMoveRequest,
    WatcherRequest,
)
from taskboard.domain.permissions import Permission
from taskboard.infra.audit import set_audit_context
from taskboard.infra.realtime import board_hub
from taskboard.services.task_service import (
    Broadcast,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    TaskService,
)

router = APIRouter()


def get_task_service() -> TaskService:
    return TaskService()


Actor = Annotated[CurrentUser, Depends(get_current_user)]
Service = Annotated[TaskService, Depends(get_task_service)]

TASK_ERRORS = (NotFoundError, ConflictError, InvalidRequestError)


def _handle_task_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, InvalidRequestError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


async def _fan_out(broadcast: Broadcast, actor: CurrentUser) -> None:
    # Runs after commit; a failed broadcast never fails the mutation.
    try:
        await board_hub.publish(broadcast.board_id, broadcast.event, actor.id, broadcast.body)
    except Exception:
        logger.exception("broadcast {} to board {} failed", broadcast.event, broadcast.board_id)


@router.post(
    "/watcher/{task_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.MANAGE_TASK))],
)
async def add_watcher(
    task_id: str,
    payload: WatcherRequest,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(request, action="task.watcher.add", resource=task_id, what={"user_id": payload.user_id})
    try:
        broadcast = await run_in_threadpool(service.add_watcher, actor, task_id, payload.user_id)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    await _fan_out(broadcast, actor)
    return ActionResult()


@router.delete(
    "/watcher/{task_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.MANAGE_TASK))],
)
async def remove_watcher(
    task_id: str,
    payload: WatcherRequest,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(
        request,
        action="task.watcher.remove",
        resource=task_id,
        what={"user_id": payload.user_id},
    )
    try:
        broadcast = await run_in_threadpool(service.remove_watcher, actor, task_id, payload.user_id)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    await _fan_out(broadcast, actor)
    return ActionResult()


@router.post(
    "/getAssignedTasks/{workspace_id}",
    response_model=list[PopulatedTaskRead],
    dependencies=[Depends(require_capability(Permission.READ_PUBLIC))],
)
def get_assigned_tasks(
    workspace_id: str,
    payload: AssignedTasksQuery,
    service: Service,
) -> list[PopulatedTaskRead]:
    try:
        return service.list_filtered(workspace_id, payload.filter)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise


@router.post(
    "/comment/{task_id}",
    response_model=ActionResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Permission.MANAGE_TASK))],
)
async def add_comment(
    task_id: str,
    payload: CommentCreate,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(request, action="task.comment.create", resource=task_id)
    try:
        broadcast = await run_in_threadpool(service.add_comment, actor, task_id, payload)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    await _fan_out(broadcast, actor)
    return ActionResult()


@router.get(
    "/{board_id}/{task_id}",
    response_model=PopulatedTaskRead,
    dependencies=[Depends(require_capability(Permission.READ_PUBLIC))],
)
def get_task(board_id: str, task_id: str, service: Service) -> PopulatedTaskRead:
    try:
        return service.get_task(board_id, task_id)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise


@router.patch(
    "/{board_id}/{task_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.MANAGE_TASK))],
)
async def edit_task(
    board_id: str,
    task_id: str,
    payload: TaskEditRequest,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(
        request,
        action="task.edit",
        resource=task_id,
        what={"type": payload.type.value, "column": payload.column},
    )
    try:
        broadcast = await run_in_threadpool(service.edit_task, actor, board_id, task_id, payload)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    await _fan_out(broadcast, actor)
    return ActionResult()


@router.delete(
    "/{board_id}/{task_id}/{option_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.MANAGE_TASK))],
)
async def clear_option(
    board_id: str,
    task_id: str,
    option_id: str,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(
        request,
        action="task.option.clear",
        resource=task_id,
        what={"column": option_id},
    )
    try:
        broadcast = await run_in_threadpool(service.clear_option, actor, board_id, task_id, option_id)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    await _fan_out(broadcast, actor)
    return ActionResult()


@router.post(
    "/{board_id}/{task_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.MANAGE_TASK))],
)
def add_subtask(
    board_id: str,
    task_id: str,
    payload: TaskCreate,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(request, action="task.subtask.create", resource=task_id)
    try:
        service.add_subtask(actor, board_id, task_id, payload)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    return ActionResult()


@router.patch(
    "/{board_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.MANAGE_TASK))],
)
def move_task(
    board_id: str,
    payload: TaskMoveRequest,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(
        request,
        action="task.move",
        resource=payload.task_id,
        what={"new_parent_task": payload.new_parent_task, "over_id": payload.over_id},
    )
    try:
        service.move_task(actor, board_id, payload)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    return ActionResult()


@router.post(
    "/{board_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.CREATE_TASK))],
)
async def add_task(
    board_id: str,
    payload: TaskCreate,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(request, action="task.create", resource=board_id)
    try:
        _, broadcast = await run_in_threadpool(service.add_task, actor, board_id, payload)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    await _fan_out(broadcast, actor)
    return ActionResult()


@router.delete(
    "/{board_id}/{task_id}",
    response_model=ActionResult,
    dependencies=[Depends(require_capability(Permission.DELETE_TASK))],
)
async def delete_task(
    board_id: str,
    task_id: str,
    request: Request,
    actor: Actor,
    service: Service,
) -> ActionResult:
    set_audit_context(request, action="task.delete", resource=task_id)
    try:
        broadcast = await run_in_threadpool(service.delete_task, actor, board_id, task_id)
    except TASK_ERRORS as exc:
        _handle_task_error(exc)
        raise
    await _fan_out(broadcast, actor)
    return ActionResult()
