from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from taskboard.api.deps import get_current_user
from taskboard.domain.models import CurrentUser, LoginRequest, TokenResponse, UserCreate, UserRead
from taskboard.infra.auth import create_access_token
from taskboard.services.identity_service import AuthError, ConflictError, IdentityService, NotFoundError

router = APIRouter()


def get_identity_service() -> IdentityService:
    return IdentityService()


Service = Annotated[IdentityService, Depends(get_identity_service)]


def _handle_identity_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, AuthError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    raise exc


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, service: Service) -> UserRead:
    try:
        user = service.register(payload)
        return UserRead.model_validate(user)
    except (ConflictError, AuthError) as exc:
        _handle_identity_error(exc)
        raise


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, service: Service) -> TokenResponse:
    try:
        user = service.authenticate(payload.username, payload.password)
    except AuthError as exc:
        _handle_identity_error(exc)
        raise
    return TokenResponse(access_token=create_access_token(user_id=user.id, username=user.username))


@router.get("/me", response_model=CurrentUser)
def me(user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
    return user
