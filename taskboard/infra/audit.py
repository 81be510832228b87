"""Request audit trail for board writes.

Every write request lands in ``audit_logs`` once its response is built. The
row records the workspace/board/task scope taken from the matched route's
path params and, when a permission dependency ran, the tier the caller
resolved to. A denied mutation therefore shows which membership was checked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from taskboard.domain.models import AuditLog, now_utc
from taskboard.infra.db import engine

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
UNAUDITED_PATHS = {"/healthz", "/readyz"}
SCOPE_PARAMS = ("workspace_id", "board_id", "task_id", "option_id")
AUDIT_STATE_KEY = "audit"
MEMBER_STATE_KEY = "member"


@dataclass
class AuditContext:
    action: str | None = None
    resource: str | None = None
    what: dict[str, Any] = field(default_factory=dict)


def write_audit_log(
    *,
    actor_id: str | None,
    action: str,
    resource: str,
    method: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> None:
    with Session(engine) as session:
        session.add(
            AuditLog(
                actor_id=actor_id,
                action=action,
                resource=resource,
                method=method,
                status_code=status_code,
                detail=detail or {},
            )
        )
        session.commit()


def audit_outcome(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code in {401, 403}:
        return "denied"
    if status_code == 404:
        return "not_found"
    if status_code == 409:
        return "conflict"
    if status_code >= 400:
        return "rejected"
    return "success"


def should_audit_request(method: str, path: str) -> bool:
    return method in WRITE_METHODS and path not in UNAUDITED_PATHS


def audit_context(request: Request) -> AuditContext:
    context = getattr(request.state, AUDIT_STATE_KEY, None)
    if not isinstance(context, AuditContext):
        context = AuditContext()
        setattr(request.state, AUDIT_STATE_KEY, context)
    return context


def set_audit_context(
    request: Request,
    *,
    action: str | None = None,
    resource: str | None = None,
    what: dict[str, Any] | None = None,
) -> None:
    context = audit_context(request)
    if action is not None:
        context.action = action
    if resource is not None:
        context.resource = resource
    if what:
        context.what.update(what)


def request_scope_ids(request: Request) -> dict[str, str]:
    params = request.path_params
    return {key: str(params[key]) for key in SCOPE_PARAMS if params.get(key)}


def _caller(request: Request) -> dict[str, Any]:
    claims = getattr(request.state, "claims", None) or {}
    caller: dict[str, Any] = {"id": claims.get("sub"), "username": claims.get("username")}
    member = getattr(request.state, MEMBER_STATE_KEY, None)
    if member is not None:
        caller["workspace_id"] = member.workspace_id
        caller["tier"] = str(member.tier)
        caller["is_owner"] = member.is_owner
    return caller


class AuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        method = request.method
        path = request.url.path
        if not should_audit_request(method, path):
            return response

        context = audit_context(request)
        caller = _caller(request)
        scope = request_scope_ids(request)
        route = request.scope.get("route")
        action = context.action or f"{method}:{getattr(route, 'path', path)}"
        resource = context.resource or scope.get("task_id") or scope.get("board_id") or path
        detail: dict[str, Any] = {
            "caller": caller,
            "scope": scope,
            "route": getattr(route, "path", None),
            "client_ip": request.client.host if request.client is not None else None,
            "requested_at": now_utc().isoformat(),
            "what": dict(context.what),
            "outcome": audit_outcome(response.status_code),
        }
        try:
            write_audit_log(
                actor_id=caller["id"],
                action=action,
                resource=resource,
                method=method,
                status_code=response.status_code,
                detail=detail,
            )
        except Exception:
            logger.exception("audit log write failed for {} {}", method, path)
        return response
