"""User group administration (global Admin only)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from secudo.api.deps import get_db
from secudo.api.schemas import AddGroupMemberRequest, CreateGroupRequest, UpdateGroupRequest
from secudo.auth import Session, require_global_admin
from secudo.core.models import UserGroup
from secudo.exceptions import NotFoundError, ValidationError
from secudo.groups import EVERYONE_GROUP_NAME, is_everyone_group_name
from secudo.rbac import normalize_global_role
from secudo.storage.database import Database

router = APIRouter(prefix="/groups", tags=["Groups"])

_audit_logger = logging.getLogger("secudo.audit")


def _group_view(group: UserGroup) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_by_user_id": group.created_by_user_id,
        "created_at": group.created_at.isoformat(),
        "members": [
            {
                "user_id": m.user_id,
                "added_at": m.added_at.isoformat(),
                "user": {
                    "id": m.user_id,
                    "email": m.user_email,
                    "name": m.user_name,
                    "role": str(normalize_global_role(m.user_role)),
                },
            }
            for m in group.members
        ],
    }


def _reject_reserved(name: str | None) -> None:
    if name is not None and is_everyone_group_name(name):
        raise ValidationError(f'Group name "{EVERYONE_GROUP_NAME}" is reserved')


def _clean_description(raw: str | None) -> str | None:
    return (raw or "").strip() or None


async def _load_group(db: Database, group_id: str) -> UserGroup:
    group = await db.get_group(group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


@router.get("")
async def list_groups(
    session: Session = Depends(require_global_admin), db: Database = Depends(get_db)
):
    return [_group_view(g) for g in await db.list_groups()]


@router.post("", status_code=201)
async def create_group(
    req: CreateGroupRequest,
    session: Session = Depends(require_global_admin),
    db: Database = Depends(get_db),
):
    """Create a group, optionally seeded with existing users."""
    _reject_reserved(req.name)
    user_ids = list(dict.fromkeys(u.strip() for u in req.user_ids if u.strip()))
    if len(await db.existing_user_ids(user_ids)) != len(user_ids):
        raise ValidationError("One or more selected users do not exist")

    group = UserGroup(
        name=req.name,
        description=_clean_description(req.description),
        created_by_user_id=session.id,
    )
    await db.insert_group(group, user_ids)
    _audit_logger.info(
        "Group %s (%s) created by %s",
        group.id,
        group.name,
        session.id,
        extra={"action": "create_group", "actor": session.id},
    )
    return _group_view(await _load_group(db, group.id))


@router.get("/{group_id}")
async def get_group(
    group_id: str,
    session: Session = Depends(require_global_admin),
    db: Database = Depends(get_db),
):
    return _group_view(await _load_group(db, group_id))


@router.patch("/{group_id}")
async def update_group(
    group_id: str,
    req: UpdateGroupRequest,
    session: Session = Depends(require_global_admin),
    db: Database = Depends(get_db),
):
    _reject_reserved(req.name)
    fields: dict[str, str | None] = {}
    if req.name is not None:
        fields["name"] = req.name
    if req.description is not None:
        fields["description"] = _clean_description(req.description)
    if not await db.update_group(group_id, fields):
        raise NotFoundError("Group not found")
    _audit_logger.info(
        "Group %s updated by %s",
        group_id,
        session.id,
        extra={"action": "update_group", "actor": session.id},
    )
    return _group_view(await _load_group(db, group_id))


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    session: Session = Depends(require_global_admin),
    db: Database = Depends(get_db),
):
    """Delete a group; project memberships granted through it are kept."""
    if not await db.delete_group(group_id):
        raise NotFoundError("Group not found")
    _audit_logger.info(
        "Group %s deleted by %s",
        group_id,
        session.id,
        extra={"action": "delete_group", "actor": session.id},
    )
    return {"success": True, "deleted_group_id": group_id}


@router.post("/{group_id}/members")
async def add_group_member(
    group_id: str,
    req: AddGroupMemberRequest,
    session: Session = Depends(require_global_admin),
    db: Database = Depends(get_db),
):
    await _load_group(db, group_id)
    if await db.get_user(req.user_id) is None:
        raise NotFoundError("User not found")
    await db.insert_group_member(group_id, req.user_id)
    return _group_view(await _load_group(db, group_id))


@router.delete("/{group_id}/members/{user_id}")
async def remove_group_member(
    group_id: str,
    user_id: str,
    session: Session = Depends(require_global_admin),
    db: Database = Depends(get_db),
):
    await _load_group(db, group_id)
    if not await db.delete_group_member(group_id, user_id):
        raise NotFoundError("User is not in this group")
    return _group_view(await _load_group(db, group_id))
