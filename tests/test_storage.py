"""Tests for the aiosqlite repository layer."""

from __future__ import annotations

import sqlite3
from datetime import timedelta

import pytest

from secudo.core.models import (
    ModelNode,
    NodeCategory,
    Project,
    ProjectMembership,
    Savepoint,
    utcnow,
)
from secudo.exceptions import ConflictError, StorageError
from secudo.storage.database import Database


class TestUsers:
    async def test_duplicate_email_conflicts(self, make_user):
        await make_user(email="dup@example.com")
        with pytest.raises(ConflictError):
            await make_user(email="dup@example.com")

    async def test_count_admins_is_case_insensitive_but_untrimmed(self, db, make_user):
        await make_user(role="Admin")
        await make_user(role="ADMIN")
        await make_user(role=" admin ")
        await make_user(role="Editor")
        assert await db.count_admin_users() == 2

    async def test_role_is_stored_verbatim(self, db, make_user):
        user = await make_user(role="superuser")
        assert (await db.get_user(user.id)).role == "superuser"


class TestProjects:
    async def test_insert_creates_creator_membership(self, db, make_user):
        owner = await make_user()
        project = Project(name="Pipeline")
        await db.insert_project(project, owner.id)

        (membership,) = await db.list_members(project.id)
        assert membership.user_id == owner.id
        assert membership.role == "Admin"
        assert membership.user_email == owner.email

    async def test_insert_with_unknown_creator_leaves_nothing(self, db):
        project = Project(name="Orphan")
        with pytest.raises(sqlite3.IntegrityError):
            await db.insert_project(project, "no-such-user")
        assert await db.get_project(project.id) is None

    async def test_project_with_membership(self, db, make_user):
        owner = await make_user()
        outsider = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)

        _, role = await db.get_project_with_membership(project.id, owner.id)
        assert role == "Admin"
        _, role = await db.get_project_with_membership(project.id, outsider.id)
        assert role is None

    async def test_update_ignores_unknown_columns(self, db, make_user):
        owner = await make_user()
        project = Project(name="Before")
        await db.insert_project(project, owner.id)

        await db.update_project(project.id, {"name": "After", "id": "hijack"})
        updated = await db.get_project(project.id)
        assert updated.name == "After"
        assert updated.updated_at >= project.updated_at

    async def test_active_and_trashed_filters(self, db, make_user):
        owner = await make_user()
        live = Project(name="Live")
        gone = Project(name="Gone")
        await db.insert_project(live, owner.id)
        await db.insert_project(gone, owner.id)
        await db.set_project_deleted_at(gone.id, utcnow())

        assert [p.id for p in await db.list_projects(active_only=True)] == [live.id]
        assert [p.id for p in await db.list_trashed_projects()] == [gone.id]
        assert await db.get_project(gone.id, active_only=True) is None
        assert await db.get_project(live.id, trashed_only=True) is None

    async def test_timestamps_round_trip_as_utc(self, db, make_user):
        owner = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)
        deleted_at = utcnow() - timedelta(days=3)
        await db.set_project_deleted_at(project.id, deleted_at)

        stored = await db.get_project(project.id)
        assert stored.deleted_at == deleted_at
        assert stored.deleted_at.utcoffset() == timedelta(0)


class TestMemberships:
    async def test_duplicate_membership_conflicts(self, db, make_user):
        owner = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)
        with pytest.raises(ConflictError):
            await db.insert_membership(
                ProjectMembership(project_id=project.id, user_id=owner.id, role="Viewer")
            )

    async def test_members_ordered_earliest_first(self, db, make_user):
        owner = await make_user()
        second = await make_user()
        third = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)
        for user in (second, third):
            await db.insert_membership(
                ProjectMembership(project_id=project.id, user_id=user.id, role="Viewer")
            )

        ids = [m.user_id for m in await db.list_members(project.id)]
        assert ids == [owner.id, second.id, third.id]


class TestNodes:
    async def test_deleting_parent_detaches_children(self, db, make_user):
        owner = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)
        parent = ModelNode(project_id=project.id, name="Zone A")
        child = ModelNode(project_id=project.id, name="HMI", parent_node_id=parent.id)
        await db.insert_node(parent)
        await db.insert_node(child)

        assert await db.delete_node(parent.id) is True
        assert (await db.get_node(child.id)).parent_node_id is None

    async def test_find_container_by_name_is_case_insensitive(self, db, make_user):
        owner = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)
        container = ModelNode(project_id=project.id, name="Global", category=NodeCategory.CONTAINER)
        await db.insert_node(container)

        found = await db.find_container_by_name(project.id, "global")
        assert found.id == container.id


class TestSavepoints:
    async def test_newest_first(self, db, make_user):
        owner = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)
        older = Savepoint(
            project_id=project.id,
            title="v1",
            model_json="{}",
            created_at=utcnow() - timedelta(minutes=5),
        )
        newer = Savepoint(project_id=project.id, title="v2", model_json='{"a":1}')
        await db.insert_savepoint(older)
        await db.insert_savepoint(newer)

        listed = await db.list_savepoints(project.id)
        assert [s.title for s in listed] == ["v2", "v1"]
        assert listed[0].model_json == '{"a":1}'
        assert "model_json" not in listed[0].model_dump()


async def test_unconnected_database_raises_storage_error(tmp_path):
    database = Database(tmp_path / "never.db")
    with pytest.raises(StorageError):
        await database.get_user("anyone")
