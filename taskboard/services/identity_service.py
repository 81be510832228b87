from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from taskboard.domain.models import User, UserCreate
from taskboard.infra.auth import hash_password
from taskboard.infra.db import get_engine


class IdentityError(Exception):
    pass


class NotFoundError(IdentityError):
    pass


class ConflictError(IdentityError):
    pass


class AuthError(IdentityError):
    pass


class IdentityService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def register(self, payload: UserCreate) -> User:
        with self._session() as session:
            existing = session.exec(select(User).where(User.username == payload.username)).first()
            if existing is not None:
                raise ConflictError("username already taken")
            user = User(username=payload.username, password_hash=hash_password(payload.password))
            session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("username already taken") from exc
            session.refresh(user)
            return user

    def authenticate(self, username: str, password: str) -> User:
        with self._session() as session:
            user = session.exec(select(User).where(User.username == username)).first()
            if user is None or user.password_hash != hash_password(password):
                raise AuthError("invalid credentials")
            return user

    def get_user(self, user_id: str) -> User:
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("user not found")
            return user
