"""Project trash and retention.

Deleting a project only stamps ``deleted_at``; the project stays restorable
for :data:`PROJECT_TRASH_RETENTION_DAYS` and is purged afterwards.  Purging
is lazy: it runs whenever the project or trash listing is read, not on a
schedule.

Whether the live schema has the ``deleted_at`` column is decided once at
startup and handed to :class:`TrashManager`; without it every delete is
permanent.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from secudo.access import compute_permissions
from secudo.core.models import Project, utcnow
from secudo.exceptions import ForbiddenError, NotFoundError, ValidationError
from secudo.rbac import ProjectRole, is_global_admin, normalize_membership_role
from secudo.storage.database import Database

logger = logging.getLogger("secudo.trash")
_audit_logger = logging.getLogger("secudo.audit")

PROJECT_TRASH_RETENTION_DAYS = 30

_DAY = timedelta(days=1)


def get_project_trash_expiry(deleted_at: datetime) -> datetime:
    """When a project trashed at *deleted_at* becomes eligible for purge."""
    return deleted_at + timedelta(days=PROJECT_TRASH_RETENTION_DAYS)


def get_project_trash_cutoff(now: datetime | None = None) -> datetime:
    """Projects with ``deleted_at <= cutoff`` are purge-eligible."""
    return (now or utcnow()) - timedelta(days=PROJECT_TRASH_RETENTION_DAYS)


def can_restore(global_role: str | None, membership_role: str | None, is_creator: bool) -> bool:
    return (
        is_global_admin(global_role)
        or normalize_membership_role(membership_role) is ProjectRole.ADMIN
        or is_creator
    )


@dataclass(frozen=True)
class TrashedProject:
    """A trashed project as seen by one caller."""

    project: Project
    can_restore: bool
    expires_at: datetime
    days_remaining: int
    retention_days: int = PROJECT_TRASH_RETENTION_DAYS


@dataclass(frozen=True)
class DeletionResult:
    project_id: str
    permanently_deleted: bool
    deleted_at: datetime | None = None
    expires_at: datetime | None = None

    @property
    def retention_days(self) -> int:
        return 0 if self.permanently_deleted else PROJECT_TRASH_RETENTION_DAYS


class TrashManager:
    """Soft-delete, restore and purge projects."""

    def __init__(self, db: Database, supports_deleted_at: bool) -> None:
        self.db = db
        self.supports_deleted_at = supports_deleted_at

    # ------------------------------------------------------------------
    # Purge
    # ------------------------------------------------------------------

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Permanently delete projects whose retention window has elapsed."""
        if not self.supports_deleted_at:
            return 0
        cutoff = get_project_trash_cutoff(now)
        purged = await self.db.purge_deleted_projects(cutoff)
        if purged:
            logger.info(
                "Purged %d expired trashed project(s) (cutoff %s)",
                purged,
                cutoff.isoformat(),
                extra={"action": "purge_projects"},
            )
        return purged

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_trash(
        self, user_id: str, global_role: str | None, now: datetime | None = None
    ) -> list[TrashedProject]:
        """Trashed projects visible to the caller, most recently deleted first.

        Global Admins see every trashed project; others only those they are
        a member of.
        """
        if not self.supports_deleted_at:
            return []

        now = now or utcnow()
        await self.purge_expired(now)

        projects = await self.db.list_trashed_projects(
            None if is_global_admin(global_role) else user_id
        )
        entries: list[TrashedProject] = []
        for project in projects:
            members = await self.db.list_members(project.id)
            membership = next((m for m in members if m.user_id == user_id), None)
            is_creator = bool(members) and members[0].user_id == user_id
            expires_at = get_project_trash_expiry(project.deleted_at)
            remaining = max(timedelta(0), expires_at - now)
            entries.append(
                TrashedProject(
                    project=project,
                    can_restore=can_restore(
                        global_role, membership.role if membership else None, is_creator
                    ),
                    expires_at=expires_at,
                    days_remaining=math.ceil(remaining / _DAY),
                )
            )
        return entries

    # ------------------------------------------------------------------
    # Mutations (each re-checks authorization)
    # ------------------------------------------------------------------

    async def soft_delete(
        self,
        project_id: str,
        user_id: str,
        global_role: str | None,
        now: datetime | None = None,
    ) -> DeletionResult:
        """Move a project to the trash.

        Without soft-delete support the deletion is permanent.
        """
        await self.purge_expired(now)

        project = await self.db.get_project(project_id, active_only=self.supports_deleted_at)
        if project is None:
            raise NotFoundError("Project not found")

        await self._require_restore_rights(project, user_id, global_role, "delete_project")

        if not self.supports_deleted_at:
            return await self._purge(project, user_id)

        deleted_at = now or utcnow()
        await self.db.set_project_deleted_at(project.id, deleted_at)
        _audit_logger.info(
            "Project %s moved to trash by %s",
            project.id,
            user_id,
            extra={"action": "trash_project", "actor": user_id, "project_id": project.id},
        )
        return DeletionResult(
            project_id=project.id,
            permanently_deleted=False,
            deleted_at=deleted_at,
            expires_at=get_project_trash_expiry(deleted_at),
        )

    async def delete_permanently(
        self, project_id: str, user_id: str, global_role: str | None
    ) -> DeletionResult:
        """Purge a project that is already in the trash."""
        if not self.supports_deleted_at:
            return await self.soft_delete(project_id, user_id, global_role)

        await self.purge_expired()
        project = await self.db.get_project(project_id, trashed_only=True)
        if project is None:
            raise NotFoundError("Project not found in Recycle Bin")

        await self._require_restore_rights(project, user_id, global_role, "delete_project")
        return await self._purge(project, user_id)

    async def _purge(self, project: Project, user_id: str) -> DeletionResult:
        await self.db.delete_project(project.id)
        _audit_logger.info(
            "Project %s permanently deleted by %s",
            project.id,
            user_id,
            extra={"action": "purge_project", "actor": user_id, "project_id": project.id},
        )
        return DeletionResult(project_id=project.id, permanently_deleted=True)

    async def restore(self, project_id: str, user_id: str, global_role: str | None) -> Project:
        """Clear ``deleted_at`` on a trashed project the caller may restore."""
        if not self.supports_deleted_at:
            raise ValidationError("Project trash is not available in this runtime")

        project = await self.db.get_project(project_id, trashed_only=True)
        if project is None:
            raise NotFoundError("Project not found in trash")

        await self._require_restore_rights(project, user_id, global_role, "restore_project")

        await self.db.set_project_deleted_at(project.id, None)
        _audit_logger.info(
            "Project %s restored by %s",
            project.id,
            user_id,
            extra={"action": "restore_project", "actor": user_id, "project_id": project.id},
        )
        restored = await self.db.get_project(project.id)
        if restored is None:
            raise NotFoundError("Project not found")
        return restored

    async def _require_restore_rights(
        self, project: Project, user_id: str, global_role: str | None, action: str
    ) -> None:
        members = await self.db.list_members(project.id)
        perms = compute_permissions(project, members, user_id, global_role)
        if not perms.can_manage_settings:
            _audit_logger.warning(
                "Access denied: %s on project %s for %s",
                action,
                project.id,
                user_id,
                extra={"action": action, "actor": user_id, "project_id": project.id},
            )
            raise ForbiddenError(
                "Not authorized (Project creator, project Admin, or global Admin required)"
            )
