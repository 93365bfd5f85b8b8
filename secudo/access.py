"""Project view-access resolution and per-project permissions.

Visibility of a project is governed by its ``min_role_to_view`` policy:

    any      — every authenticated user
    viewer   — members with rank >= Viewer
    editor   — members with rank >= Editor
    admin    — members with rank >= Admin
    private  — any member ("members only", not "admins only")

A global Admin bypasses the policy entirely.  Unknown policies deny.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from secudo.core.models import Project, ProjectMembership
from secudo.exceptions import ForbiddenError, NotFoundError
from secudo.rbac import (
    ROLE_RANK,
    ProjectRole,
    can_edit,
    is_global_admin,
    normalize_membership_role,
)
from secudo.storage.database import Database

_audit_logger = logging.getLogger("secudo.audit")


class ViewPolicy(StrEnum):
    ANY = "any"
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    PRIVATE = "private"


_POLICY_REQUIRED_ROLE: dict[ViewPolicy, ProjectRole] = {
    ViewPolicy.VIEWER: ProjectRole.VIEWER,
    ViewPolicy.EDITOR: ProjectRole.EDITOR,
    ViewPolicy.ADMIN: ProjectRole.ADMIN,
}


def normalize_view_policy(raw: str | None) -> ViewPolicy | None:
    """Case-insensitive policy lookup; legacy ``user`` means ``editor``."""
    if not isinstance(raw, str):
        return None
    value = raw.lower()
    if value == "user":
        return ViewPolicy.EDITOR
    try:
        return ViewPolicy(value)
    except ValueError:
        return None


def resolve_view_access(
    min_role_to_view: str | None,
    membership_role: str | None,
    global_role: str | None,
) -> bool:
    """Decide whether a caller may view a project."""
    if is_global_admin(global_role):
        return True

    policy = normalize_view_policy(min_role_to_view)
    if policy is ViewPolicy.ANY:
        return True

    role = normalize_membership_role(membership_role)
    if role is None or policy is None:
        return False

    if policy is ViewPolicy.PRIVATE:
        return True

    return ROLE_RANK[role] >= ROLE_RANK[_POLICY_REQUIRED_ROLE[policy]]


@dataclass(frozen=True)
class ProjectViewAccess:
    """Outcome of :func:`get_project_view_access`.

    ``exists=False`` maps to 404, ``can_view=False`` to 403.
    """

    exists: bool
    can_view: bool
    project: Project | None = None
    min_role_to_view: str | None = None
    membership_role: str | None = None
    normalized_membership_role: ProjectRole | None = None


async def get_project_view_access(
    db: Database,
    project_id: str,
    user_id: str,
    global_role: str | None,
    *,
    exclude_deleted: bool = True,
) -> ProjectViewAccess:
    """Fetch a project with the caller's membership and apply the view policy.

    *exclude_deleted* should be the storage layer's soft-delete support flag;
    trashed projects are then reported as non-existent.
    """
    found = await db.get_project_with_membership(project_id, user_id, active_only=exclude_deleted)
    if found is None:
        return ProjectViewAccess(exists=False, can_view=False)

    project, membership_role = found
    return ProjectViewAccess(
        exists=True,
        can_view=resolve_view_access(project.min_role_to_view, membership_role, global_role),
        project=project,
        min_role_to_view=project.min_role_to_view,
        membership_role=membership_role,
        normalized_membership_role=normalize_membership_role(membership_role),
    )


# ---------------------------------------------------------------------------
# Per-project permissions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectPermissions:
    """Capabilities a caller holds on one project."""

    project: Project
    members: list[ProjectMembership]
    membership: ProjectMembership | None
    can_view: bool
    can_edit: bool
    can_manage_settings: bool

    @property
    def creator_user_id(self) -> str | None:
        return self.members[0].user_id if self.members else None

    @property
    def can_delete(self) -> bool:
        return self.can_manage_settings


def compute_permissions(
    project: Project,
    members: list[ProjectMembership],
    user_id: str,
    global_role: str | None,
) -> ProjectPermissions:
    """Derive capabilities from an ordered member list (earliest = creator)."""
    membership = next((m for m in members if m.user_id == user_id), None)
    membership_role = membership.role if membership else None
    admin = is_global_admin(global_role)
    is_creator = bool(members) and members[0].user_id == user_id
    return ProjectPermissions(
        project=project,
        members=members,
        membership=membership,
        can_view=resolve_view_access(project.min_role_to_view, membership_role, global_role),
        can_edit=admin or can_edit(membership_role),
        can_manage_settings=admin
        or normalize_membership_role(membership_role) is ProjectRole.ADMIN
        or is_creator,
    )


async def load_permissions(
    db: Database,
    project_id: str,
    user_id: str,
    global_role: str | None,
    *,
    exclude_deleted: bool = True,
) -> ProjectPermissions:
    """Load a project and the caller's permissions, raising 404 if absent."""
    project = await db.get_project(project_id, active_only=exclude_deleted)
    if project is None:
        raise NotFoundError("Project not found")
    members = await db.list_members(project_id)
    return compute_permissions(project, members, user_id, global_role)


def _deny(perms: ProjectPermissions, user_id: str, action: str, message: str) -> None:
    _audit_logger.warning(
        "Access denied: %s on project %s for %s",
        action,
        perms.project.id,
        user_id,
        extra={"action": action, "actor": user_id, "project_id": perms.project.id},
    )
    raise ForbiddenError(message)


def require_view(perms: ProjectPermissions, user_id: str) -> ProjectPermissions:
    if not perms.can_view:
        _deny(perms, user_id, "view_project", "Not authorized")
    return perms


def require_edit(perms: ProjectPermissions, user_id: str) -> ProjectPermissions:
    if not perms.can_edit:
        _deny(perms, user_id, "edit_project", "Not authorized (Editor required)")
    return perms


def require_manage(perms: ProjectPermissions, user_id: str) -> ProjectPermissions:
    if not perms.can_manage_settings:
        _deny(
            perms,
            user_id,
            "manage_project",
            "Not authorized (Project creator, project Admin, or global Admin required)",
        )
    return perms
