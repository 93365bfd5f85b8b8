"""Project membership routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from secudo.access import ProjectPermissions, load_permissions, require_manage
from secudo.api.deps import get_db, get_trash, member_view
from secudo.api.schemas import AddMemberRequest, UpdateMemberRoleRequest
from secudo.auth import Session, require_session
from secudo.core.models import ProjectMembership
from secudo.exceptions import ForbiddenError, NotFoundError, ValidationError
from secudo.groups import (
    EVERYONE_GROUP_ID,
    is_everyone_group_id,
    merge_invites,
    resolve_member_roles,
)
from secudo.rbac import ProjectRole, is_global_admin, normalize_membership_role
from secudo.storage.database import Database
from secudo.trash import TrashManager

router = APIRouter(prefix="/projects/{project_id}/members", tags=["Members"])

_audit_logger = logging.getLogger("secudo.audit")


def _invite_role(raw: str) -> ProjectRole:
    """Invite roles accept the legacy ``User`` label, stored as Editor."""
    return normalize_membership_role(raw) or ProjectRole.VIEWER


def _stored_role(raw: str) -> str:
    return str(_invite_role(raw))


async def _permissions(
    project_id: str, session: Session, db: Database, trash: TrashManager
) -> ProjectPermissions:
    return await load_permissions(
        db, project_id, session.id, session.role, exclude_deleted=trash.supports_deleted_at
    )


def _roster(perms: ProjectPermissions, members: list[ProjectMembership]) -> dict:
    creator = members[0].user_id if members else None
    return {
        "creator_user_id": creator,
        "can_manage_settings": perms.can_manage_settings,
        "members": [member_view(m, creator) for m in members],
    }


@router.get("")
async def list_members(
    project_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Members are visible to other members and to settings managers."""
    perms = await _permissions(project_id, session, db, trash)
    if not (perms.can_manage_settings or perms.membership is not None):
        raise ForbiddenError("Not authorized (Project membership required)")
    return _roster(perms, perms.members)


async def _apply_invites(
    project_id: str,
    req: AddMemberRequest,
    session: Session,
    db: Database,
    perms: ProjectPermissions,
) -> dict:
    """Replace the roster with everyone reached by the invites.

    Unknown users or groups reject the whole request before anything is
    written.
    """
    user_roles = merge_invites(
        [(u.user_id, _invite_role(u.role)) for u in req.invited_users]
        + [(user_id, ProjectRole.VIEWER) for user_id in req.invited_user_ids]
    )
    group_roles = merge_invites(
        [(g.group_id, _invite_role(g.role)) for g in req.invited_groups]
        + [(group_id, ProjectRole.VIEWER) for group_id in req.invited_group_ids]
    )
    real_group_ids = [g for g in group_roles if not is_everyone_group_id(g)]

    if len(await db.existing_user_ids(list(user_roles))) != len(user_roles):
        raise ValidationError("One or more invited users do not exist")
    group_members = await db.group_member_ids(real_group_ids)
    if len(group_members) != len(real_group_ids):
        raise ValidationError("One or more invited groups do not exist")
    all_user_ids = (
        [u.id for u in await db.list_users()] if EVERYONE_GROUP_ID in group_roles else []
    )

    roles = resolve_member_roles(
        creator_user_id=perms.creator_user_id,
        user_roles=user_roles,
        group_roles=group_roles,
        group_members=group_members,
        all_user_ids=all_user_ids,
        actor_id=session.id,
        actor_membership_role=perms.membership.role if perms.membership else None,
    )
    await db.replace_memberships(project_id, {uid: str(role) for uid, role in roles.items()})
    _audit_logger.info(
        "Project %s roster replaced by %s (%d members, %d groups invited)",
        project_id,
        session.id,
        len(roles),
        len(group_roles),
        extra={"action": "invite_members", "actor": session.id, "project_id": project_id},
    )
    return _roster(perms, await db.list_members(project_id))


@router.post("", status_code=201)
async def add_member(
    project_id: str,
    req: AddMemberRequest,
    response: Response,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Add one member, or replace the roster from user and group invites."""
    perms = require_manage(await _permissions(project_id, session, db, trash), session.id)
    if req.is_bulk:
        response.status_code = 200
        return await _apply_invites(project_id, req, session, db, perms)

    user_id = req.user_id
    if await db.get_user(user_id) is None:
        raise NotFoundError("User not found")

    membership = ProjectMembership(
        project_id=project_id, user_id=user_id, role=_stored_role(req.role)
    )
    await db.insert_membership(membership)
    _audit_logger.info(
        "User %s added to project %s as %s by %s",
        user_id,
        project_id,
        membership.role,
        session.id,
        extra={"action": "add_member", "actor": session.id, "project_id": project_id},
    )
    stored = await db.get_membership(project_id, user_id)
    return member_view(stored or membership, perms.creator_user_id)


@router.patch("/{member_user_id}")
async def update_member_role(
    project_id: str,
    member_user_id: str,
    req: UpdateMemberRoleRequest,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Change a member's role; the creator's role is guarded."""
    perms = require_manage(await _permissions(project_id, session, db, trash), session.id)
    target = next((m for m in perms.members if m.user_id == member_user_id), None)
    if target is None:
        raise NotFoundError("Project member not found")

    creator = perms.creator_user_id
    if member_user_id == creator and session.id != creator and not is_global_admin(session.role):
        raise ForbiddenError("Only the project creator or global Admin can change creator role")

    role = _stored_role(req.role)
    await db.update_membership_role(project_id, member_user_id, role)
    _audit_logger.info(
        "Member %s of project %s set to %s by %s",
        member_user_id,
        project_id,
        role,
        session.id,
        extra={"action": "change_member_role", "actor": session.id, "project_id": project_id},
    )
    updated = await db.get_membership(project_id, member_user_id)
    if updated is None:
        raise NotFoundError("Project member not found")
    updated = updated.model_copy(
        update={"user_email": target.user_email, "user_name": target.user_name}
    )
    return member_view(updated, creator)


@router.delete("/{member_user_id}")
async def remove_member(
    project_id: str,
    member_user_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    perms = require_manage(await _permissions(project_id, session, db, trash), session.id)
    if member_user_id == perms.creator_user_id:
        raise ValidationError("The project creator cannot be removed")
    if not await db.delete_membership(project_id, member_user_id):
        raise NotFoundError("Project member not found")
    _audit_logger.info(
        "Member %s removed from project %s by %s",
        member_user_id,
        project_id,
        session.id,
        extra={"action": "remove_member", "actor": session.id, "project_id": project_id},
    )
    return {"success": True, "user_id": member_user_id}
