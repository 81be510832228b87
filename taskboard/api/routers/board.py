from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from taskboard.api.deps import require_capability
from taskboard.domain.models import BoardRead
from taskboard.domain.permissions import Permission, has_capability
from taskboard.infra.auth import decode_access_token
from taskboard.infra.realtime import board_hub
from taskboard.services.access_service import AccessError, AccessService, Scope
from taskboard.services.workspace_service import NotFoundError, WorkspaceService

router = APIRouter()
ws_router = APIRouter()


def get_workspace_service() -> WorkspaceService:
    return WorkspaceService()


Service = Annotated[WorkspaceService, Depends(get_workspace_service)]


def _extract_ws_token(websocket: WebSocket, token: str | None) -> str | None:
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


@router.get(
    "/{board_id}",
    response_model=BoardRead,
    dependencies=[Depends(require_capability(Permission.READ_PUBLIC))],
)
def get_board(board_id: str, service: Service) -> BoardRead:
    try:
        return BoardRead.model_validate(service.get_board(board_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@ws_router.websocket("/ws/board/{board_id}")
async def ws_board(websocket: WebSocket, board_id: str, token: str | None = Query(default=None)) -> None:
    resolved_token = _extract_ws_token(websocket, token)
    if not resolved_token:
        await websocket.close(code=4401)
        return
    try:
        claims = decode_access_token(resolved_token)
    except Exception:
        await websocket.close(code=4401)
        return
    user_id = claims["sub"]
    try:
        member = AccessService().resolve_member(Scope(board_id=board_id), user_id)
    except AccessError:
        await websocket.close(code=4403)
        return
    if not has_capability(member, Permission.READ_PUBLIC):
        await websocket.close(code=4403)
        return

    await board_hub.connect(board_id, user_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        board_hub.disconnect(board_id, websocket)
