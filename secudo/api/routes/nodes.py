"""System model routes: containers and components of a project."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from secudo.access import get_project_view_access, load_permissions, require_edit
from secudo.api.deps import get_db, get_trash
from secudo.api.schemas import CreateNodeRequest, UpdateNodeRequest
from secudo.auth import Session, require_session
from secudo.core.models import ModelNode, NodeCategory
from secudo.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from secudo.hierarchy import (
    build_hierarchy,
    ensure_global_container,
    normalize_category,
    would_create_cycle,
)
from secudo.storage.database import Database
from secudo.trash import TrashManager

router = APIRouter(prefix="/projects/{project_id}", tags=["Model"])

logger = logging.getLogger("secudo.api.nodes")


def _node_view(node: ModelNode) -> dict[str, Any]:
    return node.model_dump(mode="json")


async def _require_project_view(
    db: Database, trash: TrashManager, project_id: str, session: Session
) -> None:
    access = await get_project_view_access(
        db, project_id, session.id, session.role, exclude_deleted=trash.supports_deleted_at
    )
    if not access.exists:
        raise NotFoundError("Project not found")
    if not access.can_view:
        raise ForbiddenError("Not authorized")


async def _require_project_edit(
    db: Database, trash: TrashManager, project_id: str, session: Session
) -> None:
    perms = await load_permissions(
        db, project_id, session.id, session.role, exclude_deleted=trash.supports_deleted_at
    )
    require_edit(perms, session.id)


async def _get_project_node(db: Database, project_id: str, node_id: str) -> ModelNode:
    node = await db.get_node(node_id)
    if node is None or node.project_id != project_id:
        raise NotFoundError("Node not found")
    return node


async def _get_parent(db: Database, project_id: str, parent_id: str) -> ModelNode:
    parent = await db.get_node(parent_id)
    if parent is None or parent.project_id != project_id:
        raise ValidationError("Parent node not found in this project")
    return parent


def _require_container(parent: ModelNode) -> None:
    if parent.category is not NodeCategory.CONTAINER:
        raise ValidationError("Parent node must be a Container")


@router.get("/nodes")
async def list_nodes(
    project_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    await _require_project_view(db, trash, project_id, session)
    return [_node_view(n) for n in await db.list_nodes(project_id)]


@router.get("/model/hierarchy")
async def get_hierarchy(
    project_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """The project's node forest, roots first."""
    await _require_project_view(db, trash, project_id, session)
    return {"project_id": project_id, "roots": build_hierarchy(await db.list_nodes(project_id))}


@router.post("/nodes", status_code=201)
async def create_node(
    project_id: str,
    req: CreateNodeRequest,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Create a node.

    Components without a parent are placed under the project's ``Global``
    container, which is created on demand.
    """
    await _require_project_edit(db, trash, project_id, session)
    category = normalize_category(req.category)

    parent_id = req.parent_node_id
    if parent_id:
        _require_container(await _get_parent(db, project_id, parent_id))
    elif category is NodeCategory.COMPONENT:
        parent_id = (await ensure_global_container(db, project_id, session.id)).id

    node = ModelNode(
        project_id=project_id,
        name=req.name,
        category=category,
        description=req.description,
        notes=req.notes,
        parent_node_id=parent_id,
        created_by_user_id=session.id,
    )
    await db.insert_node(node)
    logger.info("Node %s (%s) created in project %s", node.id, category.value, project_id)
    return _node_view(node)


@router.get("/nodes/{node_id}")
async def get_node(
    project_id: str,
    node_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    await _require_project_view(db, trash, project_id, session)
    return _node_view(await _get_project_node(db, project_id, node_id))


@router.patch("/nodes/{node_id}")
async def update_node(
    project_id: str,
    node_id: str,
    req: UpdateNodeRequest,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    """Update a node; re-parenting is rejected if it would close a cycle."""
    await _require_project_edit(db, trash, project_id, session)
    node = await _get_project_node(db, project_id, node_id)

    fields: dict[str, Any] = {}
    if req.name is not None:
        fields["name"] = req.name
    if req.description is not None:
        fields["description"] = req.description
    if req.notes is not None:
        fields["notes"] = req.notes

    if "parent_node_id" in req.model_fields_set:
        new_parent = req.parent_node_id
        if new_parent:
            parent = await _get_parent(db, project_id, new_parent)
            if await would_create_cycle(db, project_id, node.id, new_parent):
                raise ConflictError("Moving the node there would create a cycle")
            _require_container(parent)
        fields["parent_node_id"] = new_parent

    if fields:
        await db.update_node(node.id, fields)
    return _node_view(await _get_project_node(db, project_id, node.id))


@router.delete("/nodes/{node_id}")
async def delete_node(
    project_id: str,
    node_id: str,
    session: Session = Depends(require_session),
    db: Database = Depends(get_db),
    trash: TrashManager = Depends(get_trash),
):
    await _require_project_edit(db, trash, project_id, session)
    node = await _get_project_node(db, project_id, node_id)
    await db.delete_node(node.id)
    return {"success": True, "node_id": node.id}
