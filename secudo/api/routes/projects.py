"""Project lifecycle routes: create, list, update, trash, restore."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from secudo.access import compute_permissions, load_permissions, require_manage, require_view
from secudo.api.deps import get_db, get_trash, member_view
from secudo.api.schemas import CreateProjectRequest, UpdateProjectRequest
from secudo.auth import Session, require_session
from secudo.core.models import Project
from secudo.exceptions import NotFoundError
from secudo.norms import normalize_selectable_project_norms, serialize_project_norms
from secudo.storage.database import Database
from secudo.trash import PROJECT_TRASH_RETENTION_DAYS, TrashManager

router = APIRouter(prefix="/projects", tags=["Projects"])


def _project_view(project: Project) -> dict[str, Any]:
    return project.model_dump(mode="json")


@router.get("")
async def list_projects(
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Active projects the caller may view, most recently updated first."""
    await trash.purge_expired()
    visible: list[dict[str, Any]] = []
    for project in await db.list_projects(active_only=trash.supports_deleted_at):
        members = await db.list_members(project.id)
        perms = compute_permissions(project, members, session.id, session.role)
        if not perms.can_view:
            continue
        visible.append(
            {
                **_project_view(project),
                "can_edit": perms.can_edit,
                "can_delete": perms.can_delete,
            }
        )
    return visible


@router.post("", status_code=201)
async def create_project(
    req: CreateProjectRequest,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
):
    """Create a project; the caller becomes its Admin member and creator."""
    norm = serialize_project_norms(normalize_selectable_project_norms(req.norms, req.norm))
    project = Project(
        name=req.name,
        description=(req.description or "").strip() or None,
        norm=norm,
        min_role_to_view=req.min_role_to_view,
    )
    await db.insert_project(project, session.id)
    members = await db.list_members(project.id)
    return {
        **_project_view(project),
        "members": [member_view(m, session.id) for m in members],
    }


@router.get("/trash")
async def list_trash(
    session: Session = Depends(require_session),
    trash: TrashManager = Depends(get_trash),
):
    entries = await trash.list_trash(session.id, session.role)
    return [
        {
            **_project_view(entry.project),
            "can_restore": entry.can_restore,
            "expires_at": entry.expires_at.isoformat(),
            "days_remaining": entry.days_remaining,
            "retention_days": entry.retention_days,
        }
        for entry in entries
    ]


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    perms = await load_permissions(
        db, project_id, session.id, session.role, exclude_deleted=trash.supports_deleted_at
    )
    require_view(perms, session.id)
    return {
        **_project_view(perms.project),
        "members": [member_view(m, perms.creator_user_id) for m in perms.members],
        "can_edit": perms.can_edit,
        "can_manage_settings": perms.can_manage_settings,
        "can_delete": perms.can_delete,
    }


@router.put("/{project_id}")
async def update_project(
    project_id: str,
    req: UpdateProjectRequest,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Update settings (creator, project Admin, or global Admin only)."""
    perms = await load_permissions(
        db, project_id, session.id, session.role, exclude_deleted=trash.supports_deleted_at
    )
    require_manage(perms, session.id)

    fields: dict[str, Any] = {}
    if req.name and req.name.strip():
        fields["name"] = req.name.strip()
    if req.description is not None:
        fields["description"] = req.description
    if req.norm is not None or req.norms is not None:
        fields["norm"] = serialize_project_norms(
            normalize_selectable_project_norms(req.norms, req.norm)
        )
    if req.min_role_to_view is not None:
        fields["min_role_to_view"] = (
            "editor" if req.min_role_to_view == "user" else req.min_role_to_view
        )

    await db.update_project(project_id, fields)
    updated = await db.get_project(project_id)
    if updated is None:
        raise NotFoundError("Project not found")
    return _project_view(updated)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    permanent: bool = Query(default=False),
    session: Session = Depends(require_session),
    trash: TrashManager = Depends(get_trash),
):
    """Move a project to the trash; ``?permanent=true`` purges a trashed project."""
    if permanent:
        result = await trash.delete_permanently(project_id, session.id, session.role)
    else:
        result = await trash.soft_delete(project_id, session.id, session.role)
    return {
        "success": True,
        "project_id": result.project_id,
        "deleted_at": result.deleted_at.isoformat() if result.deleted_at else None,
        "expires_at": result.expires_at.isoformat() if result.expires_at else None,
        "retention_days": result.retention_days,
        "permanently_deleted": result.permanently_deleted,
    }


@router.post("/{project_id}/restore")
async def restore_project(
    project_id: str,
    session: Session = Depends(require_session),
    trash: TrashManager = Depends(get_trash),
):
    project = await trash.restore(project_id, session.id, session.role)
    return {
        "success": True,
        "project_id": project.id,
        "retention_days": PROJECT_TRASH_RETENTION_DAYS,
    }
