from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine, select

from taskboard import main as app_main
from taskboard.domain.models import Role, User, WorkspaceMember
from taskboard.infra import audit, db


@pytest.fixture()
def workspace_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "workspace_test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(audit, "engine", test_engine)
    client = TestClient(app_main.app)
    yield client
    client.close()


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _register_and_login(client: TestClient, username: str) -> tuple[str, str]:
    response = client.post("/api/user/register", json={"username": username, "password": "pw"})
    assert response.status_code == 201
    user_id = response.json()["id"]
    response = client.post("/api/user/login", json={"username": username, "password": "pw"})
    assert response.status_code == 200
    return user_id, response.json()["access_token"]


def test_register_login_and_me(workspace_client: TestClient) -> None:
    user_id, token = _register_and_login(workspace_client, "alice")

    duplicate = workspace_client.post("/api/user/register", json={"username": "alice", "password": "pw"})
    assert duplicate.status_code == 409

    bad_login = workspace_client.post("/api/user/login", json={"username": "alice", "password": "wrong"})
    assert bad_login.status_code == 401

    me = workspace_client.get("/api/user/me", headers=_auth_header(token))
    assert me.status_code == 200
    assert me.json()["id"] == user_id
    assert me.json()["username"] == "alice"


def test_create_workspace_seeds_roles_and_owner(workspace_client: TestClient) -> None:
    owner_id, token = _register_and_login(workspace_client, "owner")

    response = workspace_client.post(
        "/api/workspace",
        json={"name": "Acme", "slug": "acme"},
        headers=_auth_header(token),
    )
    assert response.status_code == 201
    workspace_id = response.json()["id"]

    with Session(db.engine) as session:
        roles = session.exec(select(Role).where(Role.workspace_id == workspace_id)).all()
        owner = session.get(User, owner_id)
    assert sorted(item.name for item in roles) == ["admin", "guest", "member"]
    assert owner is not None
    assert owner.workspaces == [workspace_id]

    board = workspace_client.post(
        "/api/workspace/acme/boards",
        json={"name": "Roadmap"},
        headers=_auth_header(token),
    )
    assert board.status_code == 201
    assert board.json()["tasks"] == []

    fetched = workspace_client.get(f"/api/board/{board.json()['id']}", headers=_auth_header(token))
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Roadmap"


def test_workspace_slug_rules(workspace_client: TestClient) -> None:
    _, token = _register_and_login(workspace_client, "owner")

    too_long = workspace_client.post(
        "/api/workspace",
        json={"name": "Long", "slug": "toolong"},
        headers=_auth_header(token),
    )
    assert too_long.status_code == 400

    first = workspace_client.post("/api/workspace", json={"name": "A", "slug": "abc"}, headers=_auth_header(token))
    assert first.status_code == 201
    second = workspace_client.post("/api/workspace", json={"name": "B", "slug": "abc"}, headers=_auth_header(token))
    assert second.status_code == 409


def test_only_admins_manage_members(workspace_client: TestClient) -> None:
    _, owner_token = _register_and_login(workspace_client, "owner")
    member_id, member_token = _register_and_login(workspace_client, "member")
    late_id, _ = _register_and_login(workspace_client, "late")

    workspace_id = workspace_client.post(
        "/api/workspace",
        json={"name": "Acme", "slug": "acme"},
        headers=_auth_header(owner_token),
    ).json()["id"]

    added = workspace_client.post(
        f"/api/workspace/{workspace_id}/members",
        json={"user_id": member_id, "role": "member"},
        headers=_auth_header(owner_token),
    )
    assert added.status_code == 201
    assert added.json()["tier"] == "member"
    assert added.json()["is_owner"] is False

    again = workspace_client.post(
        f"/api/workspace/{workspace_id}/members",
        json={"user_id": member_id, "role": "guest"},
        headers=_auth_header(owner_token),
    )
    assert again.status_code == 409

    denied = workspace_client.post(
        f"/api/workspace/{workspace_id}/members",
        json={"user_id": late_id, "role": "member"},
        headers=_auth_header(member_token),
    )
    assert denied.status_code == 403

    board_denied = workspace_client.post(
        f"/api/workspace/{workspace_id}/boards",
        json={"name": "Nope"},
        headers=_auth_header(member_token),
    )
    assert board_denied.status_code == 403


def test_admin_cannot_grant_owner_tier(workspace_client: TestClient) -> None:
    _, owner_token = _register_and_login(workspace_client, "owner")
    admin_id, admin_token = _register_and_login(workspace_client, "admin")
    eve_id, _ = _register_and_login(workspace_client, "eve")
    mallory_id, _ = _register_and_login(workspace_client, "mallory")

    workspace_id = workspace_client.post(
        "/api/workspace",
        json={"name": "Acme", "slug": "acme"},
        headers=_auth_header(owner_token),
    ).json()["id"]
    promoted = workspace_client.post(
        f"/api/workspace/{workspace_id}/members",
        json={"user_id": admin_id, "role": "admin"},
        headers=_auth_header(owner_token),
    )
    assert promoted.status_code == 201

    escalation = workspace_client.post(
        f"/api/workspace/{workspace_id}/members",
        json={"user_id": eve_id, "role": "owner"},
        headers=_auth_header(admin_token),
    )
    assert escalation.status_code == 403
    with Session(db.engine) as session:
        eve_member = session.exec(
            select(WorkspaceMember)
            .where(WorkspaceMember.workspace_id == workspace_id)
            .where(WorkspaceMember.user_id == eve_id)
        ).first()
    assert eve_member is None

    peer = workspace_client.post(
        f"/api/workspace/{workspace_id}/members",
        json={"user_id": eve_id, "role": "admin"},
        headers=_auth_header(admin_token),
    )
    assert peer.status_code == 201

    co_owner = workspace_client.post(
        f"/api/workspace/{workspace_id}/members",
        json={"user_id": mallory_id, "role": "owner"},
        headers=_auth_header(owner_token),
    )
    assert co_owner.status_code == 201
    assert co_owner.json()["is_owner"] is True
