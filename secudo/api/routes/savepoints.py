"""Savepoints: named snapshots of a project's system model."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends

from secudo.access import get_project_view_access
from secudo.api.deps import get_db, get_trash
from secudo.api.schemas import CreateSavepointRequest
from secudo.auth import Session, require_session
from secudo.core.models import Savepoint
from secudo.exceptions import ForbiddenError, NotFoundError, PayloadTooLargeError
from secudo.rbac import can_edit, is_global_admin
from secudo.storage.database import Database
from secudo.trash import TrashManager

router = APIRouter(prefix="/projects/{project_id}/savepoints", tags=["Savepoints"])

logger = logging.getLogger("secudo.api.savepoints")

MAX_SNAPSHOT_CHARS = 2_000_000


def serialize_snapshot(snapshot: object) -> str:
    """Compact JSON used both for storage and for the size cap."""
    return json.dumps(snapshot, separators=(",", ":"), ensure_ascii=False)


@router.get("")
async def list_savepoints(
    project_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    access = await get_project_view_access(
        db, project_id, session.id, session.role, exclude_deleted=trash.supports_deleted_at
    )
    if not access.exists:
        raise NotFoundError("Project not found")
    if not access.can_view:
        raise ForbiddenError("Not authorized")
    return [sp.model_dump(mode="json") for sp in await db.list_savepoints(project_id)]


@router.post("", status_code=201)
async def create_savepoint(
    project_id: str,
    req: CreateSavepointRequest,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Store a snapshot (global Admin or project Editor/Admin)."""
    access = await get_project_view_access(
        db, project_id, session.id, session.role, exclude_deleted=trash.supports_deleted_at
    )
    if not access.exists:
        raise NotFoundError("Project not found")
    if not (is_global_admin(session.role) or can_edit(access.membership_role)):
        raise ForbiddenError("Not authorized (Editor required)")

    model_json = serialize_snapshot(req.snapshot)
    if len(model_json) > MAX_SNAPSHOT_CHARS:
        raise PayloadTooLargeError(
            f"Snapshot exceeds {MAX_SNAPSHOT_CHARS} characters ({len(model_json)})"
        )

    savepoint = Savepoint(
        project_id=project_id,
        title=req.title.strip() or "Savepoint",
        model_json=model_json,
        created_by_user_id=session.id,
    )
    await db.insert_savepoint(savepoint)
    logger.info(
        "Savepoint %s stored for project %s (%d chars)",
        savepoint.id,
        project_id,
        len(model_json),
        extra={"actor": session.id, "project_id": project_id},
    )
    return {**savepoint.model_dump(mode="json"), "size": len(model_json)}
