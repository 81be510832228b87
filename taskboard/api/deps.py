from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from taskboard.domain.models import CurrentUser
from taskboard.domain.permissions import Permission, RoleTier, has_capability, tier_at_least
from taskboard.infra.auth import decode_access_token
from taskboard.services.access_service import (
    AccessService,
    MembershipNotFoundError,
    ResolvedMember,
    Scope,
    ScopeNotFoundError,
)
from taskboard.services.identity_service import IdentityService, NotFoundError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/user/login", auto_error=False)


def get_current_claims(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
) -> dict[str, Any]:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid access token",
        )
    try:
        claims = decode_access_token(token)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid access token",
        ) from exc
    request.state.claims = claims
    return claims


def get_current_user(
    claims: Annotated[dict[str, Any], Depends(get_current_claims)],
) -> CurrentUser:
    try:
        user = IdentityService().get_user(claims["sub"])
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid access token",
        ) from exc
    return CurrentUser.model_validate(user)


def request_scope(request: Request) -> Scope:
    params = request.path_params
    return Scope(
        board_id=params.get("board_id"),
        workspace_id=params.get("workspace_id"),
        task_id=params.get("task_id"),
    )


def resolve_member(scope: Scope, user_id: str) -> ResolvedMember:
    try:
        return AccessService().resolve_member(scope, user_id)
    except ScopeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except MembershipNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden - not a workspace member",
        ) from exc


def require_capability(permission: Permission) -> Callable[..., ResolvedMember]:
    def _checker(
        request: Request,
        user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> ResolvedMember:
        member = resolve_member(request_scope(request), user.id)
        request.state.member = member
        if not has_capability(member, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {permission.value}",
            )
        return member

    return _checker


def require_tier(tier: RoleTier) -> Callable[..., ResolvedMember]:
    def _checker(
        request: Request,
        user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> ResolvedMember:
        member = resolve_member(request_scope(request), user.id)
        request.state.member = member
        if not tier_at_least(member, tier):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden - no {tier.value} perms",
            )
        return member

    return _checker
