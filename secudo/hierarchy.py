"""Model-node hierarchy: cycle guard, category rules and tree building."""

from __future__ import annotations

import logging
from typing import Any

from secudo.core.models import ModelNode, NodeCategory
from secudo.storage.database import Database

logger = logging.getLogger("secudo.hierarchy")

GLOBAL_CONTAINER_NAME = "Global"


async def would_create_cycle(
    db: Database,
    project_id: str,
    node_id: str,
    candidate_parent_id: str,
) -> bool:
    """Return True if attaching *node_id* under *candidate_parent_id* is unsafe.

    Walks the ancestor chain upward from the candidate parent.  Besides a real
    cycle (reaching *node_id*), a missing ancestor, an ancestor in another
    project, or an ancestor seen twice also count as a cycle: corrupt or
    cross-tenant chains are rejected rather than trusted.
    """
    if node_id == candidate_parent_id:
        return True

    visited: set[str] = set()
    current_id: str | None = candidate_parent_id
    while current_id is not None:
        if current_id == node_id or current_id in visited:
            return True
        visited.add(current_id)

        ancestor = await db.get_node(current_id)
        if ancestor is None or ancestor.project_id != project_id:
            logger.warning(
                "Ancestor %s of node %s is missing or outside project %s",
                current_id,
                node_id,
                project_id,
            )
            return True
        current_id = ancestor.parent_node_id

    return False


def normalize_category(raw: str | None) -> NodeCategory:
    """``container`` and ``system`` are containers; anything else is a component."""
    if raw and raw.strip().lower() in ("container", "system"):
        return NodeCategory.CONTAINER
    return NodeCategory.COMPONENT


async def ensure_global_container(db: Database, project_id: str, user_id: str) -> ModelNode:
    """Return the project's ``Global`` container, creating it on first use."""
    existing = await db.find_container_by_name(project_id, GLOBAL_CONTAINER_NAME)
    if existing is not None:
        return existing
    container = ModelNode(
        project_id=project_id,
        name=GLOBAL_CONTAINER_NAME,
        category=NodeCategory.CONTAINER,
        created_by_user_id=user_id,
    )
    await db.insert_node(container)
    logger.info("Created Global container %s for project %s", container.id, project_id)
    return container


def build_hierarchy(nodes: list[ModelNode]) -> list[dict[str, Any]]:
    """Nest *nodes* into a forest.

    Nodes whose parent is not in *nodes* become roots.  Input order is kept
    among siblings.
    """
    by_id: dict[str, dict[str, Any]] = {
        node.id: {
            "id": node.id,
            "name": node.name,
            "category": node.category.value,
            "parent_node_id": node.parent_node_id,
            "children": [],
        }
        for node in nodes
    }
    roots: list[dict[str, Any]] = []
    for node in nodes:
        entry = by_id[node.id]
        parent = by_id.get(node.parent_node_id) if node.parent_node_id else None
        if parent is not None:
            parent["children"].append(entry)
        else:
            roots.append(entry)
    return roots
