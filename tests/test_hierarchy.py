"""Tests for the model-node cycle guard and hierarchy helpers."""

from __future__ import annotations

from secudo.core.models import ModelNode, NodeCategory, Project
from secudo.hierarchy import (
    GLOBAL_CONTAINER_NAME,
    build_hierarchy,
    ensure_global_container,
    normalize_category,
    would_create_cycle,
)


async def _chain(db, project_id: str, *names: str) -> list[ModelNode]:
    """Insert containers as a parent chain: names[0] is the root."""
    nodes: list[ModelNode] = []
    parent_id = None
    for name in names:
        node = ModelNode(
            project_id=project_id,
            name=name,
            category=NodeCategory.CONTAINER,
            parent_node_id=parent_id,
        )
        await db.insert_node(node)
        nodes.append(node)
        parent_id = node.id
    return nodes


async def _project(db, make_user) -> Project:
    owner = await make_user()
    project = Project(name="Grid")
    await db.insert_project(project, owner.id)
    return project


class TestWouldCreateCycle:
    async def test_self_parent(self, db, make_user):
        project = await _project(db, make_user)
        (a,) = await _chain(db, project.id, "A")
        assert await would_create_cycle(db, project.id, a.id, a.id) is True

    async def test_descendant_as_parent(self, db, make_user):
        project = await _project(db, make_user)
        a, b, c = await _chain(db, project.id, "A", "B", "C")
        assert await would_create_cycle(db, project.id, a.id, c.id) is True
        assert await would_create_cycle(db, project.id, a.id, b.id) is True

    async def test_unrelated_parent_is_safe(self, db, make_user):
        project = await _project(db, make_user)
        a, b = await _chain(db, project.id, "A", "B")
        (x,) = await _chain(db, project.id, "X")
        assert await would_create_cycle(db, project.id, b.id, x.id) is False
        assert await would_create_cycle(db, project.id, x.id, b.id) is False

    async def test_missing_parent_fails_closed(self, db, make_user):
        project = await _project(db, make_user)
        (a,) = await _chain(db, project.id, "A")
        assert await would_create_cycle(db, project.id, a.id, "missing") is True

    async def test_cross_project_ancestor_fails_closed(self, db, make_user):
        project = await _project(db, make_user)
        other = await _project(db, make_user)
        (a,) = await _chain(db, project.id, "A")
        (foreign,) = await _chain(db, other.id, "Foreign")
        assert await would_create_cycle(db, project.id, a.id, foreign.id) is True

    async def test_preexisting_loop_terminates(self, db, make_user):
        project = await _project(db, make_user)
        p, q = await _chain(db, project.id, "P", "Q")
        (a,) = await _chain(db, project.id, "A")
        # Corrupt the store: P <-> Q
        await db.update_node(p.id, {"parent_node_id": q.id})
        assert await would_create_cycle(db, project.id, a.id, p.id) is True


class TestNormalizeCategory:
    def test_containers(self):
        assert normalize_category("Container") is NodeCategory.CONTAINER
        assert normalize_category(" system ") is NodeCategory.CONTAINER

    def test_everything_else_is_component(self):
        assert normalize_category(None) is NodeCategory.COMPONENT
        assert normalize_category("Component") is NodeCategory.COMPONENT
        assert normalize_category("firewall") is NodeCategory.COMPONENT


class TestEnsureGlobalContainer:
    async def test_created_once(self, db, make_user):
        project = await _project(db, make_user)
        first = await ensure_global_container(db, project.id, "u1")
        second = await ensure_global_container(db, project.id, "u1")

        assert first.id == second.id
        assert first.name == GLOBAL_CONTAINER_NAME
        assert first.category is NodeCategory.CONTAINER
        assert len(await db.list_nodes(project.id)) == 1


class TestBuildHierarchy:
    def test_nests_children_in_order(self):
        root = ModelNode(project_id="p", name="Root", category=NodeCategory.CONTAINER)
        c1 = ModelNode(project_id="p", name="C1", parent_node_id=root.id)
        c2 = ModelNode(project_id="p", name="C2", parent_node_id=root.id)

        tree = build_hierarchy([root, c1, c2])

        assert len(tree) == 1
        assert tree[0]["name"] == "Root"
        assert [c["name"] for c in tree[0]["children"]] == ["C1", "C2"]

    def test_orphans_become_roots(self):
        orphan = ModelNode(project_id="p", name="Orphan", parent_node_id="gone")
        assert [n["name"] for n in build_hierarchy([orphan])] == ["Orphan"]

    def test_empty(self):
        assert build_hierarchy([]) == []
