"""Account administration: listing users and changing global roles."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from secudo.api.deps import get_db
from secudo.api.schemas import UpdateUserRoleRequest
from secudo.auth import Session, require_user_manager
from secudo.core.models import User
from secudo.exceptions import ForbiddenError, NotFoundError, ValidationError
from secudo.rbac import GlobalRole, is_global_admin, normalize_global_role
from secudo.storage.database import Database

router = APIRouter(prefix="/users", tags=["Users"])

_audit_logger = logging.getLogger("secudo.audit")


def _user_view(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": str(normalize_global_role(user.role)),
        "created_at": user.created_at.isoformat(),
    }


@router.get("")
async def list_users(
    session: Session = Depends(require_user_manager), db: Database = Depends(get_db)
):
    return [_user_view(u) for u in await db.list_users()]


@router.patch("/{user_id}/role")
async def update_user_role(
    user_id: str,
    req: UpdateUserRoleRequest,
    session: Session = Depends(require_user_manager),
    db: Database = Depends(get_db),
):
    """Change a user's global role.

    Only a global Admin may grant or revoke Admin, and the last Admin
    cannot be demoted.
    """
    target = await db.get_user(user_id)
    if target is None:
        raise NotFoundError("User not found")

    target_is_admin = is_global_admin(target.role)
    new_role = GlobalRole(req.role)
    touches_admin = target_is_admin or new_role is GlobalRole.ADMIN
    if touches_admin and session.role is not GlobalRole.ADMIN:
        raise ForbiddenError("Only a global Admin can grant or revoke the Admin role")

    if target_is_admin and new_role is not GlobalRole.ADMIN:
        if await db.count_admin_users() <= 1:
            raise ValidationError("At least one Admin user must remain")

    await db.update_user_role(user_id, new_role.value)
    _audit_logger.info(
        "User %s role changed to %s by %s",
        user_id,
        new_role.value,
        session.id,
        extra={"action": "change_user_role", "actor": session.id},
    )
    updated = await db.get_user(user_id)
    if updated is None:
        raise NotFoundError("User not found")
    return _user_view(updated)
