from __future__ import annotations

from enum import StrEnum
from typing import Protocol


class Permission(StrEnum):
    READ_PUBLIC = "READ:PUBLIC"
    CREATE_TASK = "CREATE:TASK"
    MANAGE_TASK = "MANAGE:TASK"
    DELETE_TASK = "DELETE:TASK"
    MANAGE_BOARD = "MANAGE:BOARD"
    MANAGE_MEMBER = "MANAGE:MEMBER"


class RoleTier(StrEnum):
    GUEST = "guest"
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


TIER_RANK: dict[RoleTier, int] = {
    RoleTier.GUEST: 0,
    RoleTier.MEMBER: 1,
    RoleTier.ADMIN: 2,
    RoleTier.OWNER: 3,
}

GUEST_PERMISSIONS = [Permission.READ_PUBLIC]
MEMBER_PERMISSIONS = [
    *GUEST_PERMISSIONS,
    Permission.CREATE_TASK,
    Permission.MANAGE_TASK,
    Permission.DELETE_TASK,
]
ADMIN_PERMISSIONS = [
    *MEMBER_PERMISSIONS,
    Permission.MANAGE_BOARD,
    Permission.MANAGE_MEMBER,
]

# Roles seeded into every new workspace. Owners hold no role row.
ROLE_TEMPLATES: dict[RoleTier, list[Permission]] = {
    RoleTier.ADMIN: ADMIN_PERMISSIONS,
    RoleTier.MEMBER: MEMBER_PERMISSIONS,
    RoleTier.GUEST: GUEST_PERMISSIONS,
}


class MemberLike(Protocol):
    is_owner: bool
    tier: RoleTier
    permissions: list[str]


def has_capability(member: MemberLike, permission: Permission) -> bool:
    if member.is_owner:
        return True
    return permission.value in member.permissions


def tier_at_least(member: MemberLike, required: RoleTier) -> bool:
    if member.is_owner:
        return True
    return TIER_RANK[member.tier] >= TIER_RANK[required]
