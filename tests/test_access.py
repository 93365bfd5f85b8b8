"""Tests for project view-access resolution and per-project permissions."""

from __future__ import annotations

import pytest

from secudo.access import (
    ViewPolicy,
    compute_permissions,
    get_project_view_access,
    load_permissions,
    normalize_view_policy,
    require_edit,
    require_manage,
    require_view,
    resolve_view_access,
)
from secudo.core.models import Project, ProjectMembership, utcnow
from secudo.exceptions import ForbiddenError, NotFoundError
from secudo.rbac import ProjectRole


class TestNormalizeViewPolicy:
    def test_known_policies(self):
        assert normalize_view_policy("ANY") is ViewPolicy.ANY
        assert normalize_view_policy("Private") is ViewPolicy.PRIVATE

    def test_legacy_user_means_editor(self):
        assert normalize_view_policy("user") is ViewPolicy.EDITOR

    def test_unknown_is_none(self):
        assert normalize_view_policy("everyone") is None
        assert normalize_view_policy(" admin ") is None
        assert normalize_view_policy(None) is None


# ---------------------------------------------------------------------------
# resolve_view_access truth table
# ---------------------------------------------------------------------------


class TestResolveViewAccess:
    def test_any_admits_non_members(self):
        assert resolve_view_access("any", None, "Viewer") is True

    def test_viewer_policy_requires_membership(self):
        assert resolve_view_access("viewer", None, "Viewer") is False
        assert resolve_view_access("viewer", "Viewer", "Viewer") is True

    def test_editor_policy(self):
        assert resolve_view_access("editor", "Viewer", "Viewer") is False
        assert resolve_view_access("editor", "Editor", "Viewer") is True
        assert resolve_view_access("editor", "User", "Viewer") is True

    def test_admin_policy(self):
        assert resolve_view_access("admin", "Editor", "Editor") is False
        assert resolve_view_access("admin", "Admin", "Viewer") is True

    def test_private_admits_any_member(self):
        assert resolve_view_access("private", "Viewer", "Viewer") is True
        assert resolve_view_access("private", None, "Editor") is False

    def test_global_admin_bypasses_every_policy(self):
        for policy in ("any", "viewer", "editor", "admin", "private", "garbage", None):
            assert resolve_view_access(policy, None, "admin") is True

    def test_unknown_policy_denies_members(self):
        assert resolve_view_access("everyone", "Admin", "Viewer") is False

    def test_unrecognized_membership_role_denies(self):
        assert resolve_view_access("viewer", "owner", "Viewer") is False

    def test_padded_roles_are_not_trusted(self):
        assert resolve_view_access("admin", " admin ", "Viewer") is False
        assert resolve_view_access("editor", "Editor", " Admin ") is False


# ---------------------------------------------------------------------------
# Permissions from member lists
# ---------------------------------------------------------------------------


def _members(project_id: str, *pairs: tuple[str, str]) -> list[ProjectMembership]:
    return [ProjectMembership(project_id=project_id, user_id=u, role=r) for u, r in pairs]


class TestComputePermissions:
    def setup_method(self):
        self.project = Project(name="Substation", min_role_to_view="viewer")
        self.members = _members(
            self.project.id, ("creator", "Viewer"), ("boss", "Admin"), ("dev", "Editor")
        )

    def test_creator_is_earliest_member(self):
        perms = compute_permissions(self.project, self.members, "dev", "Viewer")
        assert perms.creator_user_id == "creator"

    def test_creator_manages_even_when_demoted(self):
        perms = compute_permissions(self.project, self.members, "creator", "Viewer")
        assert perms.can_manage_settings is True
        assert perms.can_delete is True
        assert perms.can_edit is False

    def test_project_admin_manages(self):
        perms = compute_permissions(self.project, self.members, "boss", "Viewer")
        assert perms.can_manage_settings is True
        assert perms.can_edit is True

    def test_editor_edits_but_cannot_manage(self):
        perms = compute_permissions(self.project, self.members, "dev", "Viewer")
        assert perms.can_edit is True
        assert perms.can_manage_settings is False

    def test_non_member_sees_nothing(self):
        perms = compute_permissions(self.project, self.members, "stranger", "Editor")
        assert perms.membership is None
        assert perms.can_view is False
        assert perms.can_edit is False

    def test_global_admin_can_do_everything(self):
        perms = compute_permissions(self.project, self.members, "stranger", "Admin")
        assert perms.can_view and perms.can_edit and perms.can_manage_settings

    def test_no_members_means_no_creator(self):
        perms = compute_permissions(self.project, [], "anyone", "Viewer")
        assert perms.creator_user_id is None
        assert perms.can_manage_settings is False


class TestRequireHelpers:
    def test_require_view_raises_forbidden(self):
        project = Project(name="Hidden", min_role_to_view="private")
        perms = compute_permissions(project, [], "u1", "Viewer")
        with pytest.raises(ForbiddenError):
            require_view(perms, "u1")

    def test_require_edit_and_manage(self):
        project = Project(name="P")
        members = _members(project.id, ("owner", "Admin"), ("reader", "Viewer"))
        reader = compute_permissions(project, members, "reader", "Viewer")
        with pytest.raises(ForbiddenError):
            require_edit(reader, "reader")
        with pytest.raises(ForbiddenError):
            require_manage(reader, "reader")
        owner = compute_permissions(project, members, "owner", "Viewer")
        assert require_manage(owner, "owner") is owner


# ---------------------------------------------------------------------------
# Storage-backed lookups
# ---------------------------------------------------------------------------


class TestGetProjectViewAccess:
    async def test_missing_project(self, db, make_user):
        user = await make_user()
        access = await get_project_view_access(db, "nope", user.id, user.role)
        assert access.exists is False
        assert access.can_view is False

    async def test_member_of_private_project(self, db, make_user):
        owner = await make_user()
        project = Project(name="Private", min_role_to_view="private")
        await db.insert_project(project, owner.id)

        access = await get_project_view_access(db, project.id, owner.id, owner.role)
        assert access.exists is True
        assert access.can_view is True
        assert access.membership_role == "Admin"
        assert access.normalized_membership_role is ProjectRole.ADMIN

    async def test_non_member_of_private_project(self, db, make_user):
        owner = await make_user()
        outsider = await make_user()
        project = Project(name="Private", min_role_to_view="private")
        await db.insert_project(project, owner.id)

        access = await get_project_view_access(db, project.id, outsider.id, outsider.role)
        assert access.exists is True
        assert access.can_view is False
        assert access.membership_role is None

    async def test_trashed_project_is_hidden(self, db, make_user):
        owner = await make_user()
        project = Project(name="Gone")
        await db.insert_project(project, owner.id)
        await db.set_project_deleted_at(project.id, utcnow())

        hidden = await get_project_view_access(db, project.id, owner.id, owner.role)
        assert hidden.exists is False
        shown = await get_project_view_access(
            db, project.id, owner.id, owner.role, exclude_deleted=False
        )
        assert shown.exists is True


class TestLoadPermissions:
    async def test_missing_project_raises_not_found(self, db, make_user):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await load_permissions(db, "missing", user.id, user.role)

    async def test_creator_from_storage(self, db, make_user):
        owner = await make_user()
        other = await make_user()
        project = Project(name="P")
        await db.insert_project(project, owner.id)
        await db.insert_membership(
            ProjectMembership(project_id=project.id, user_id=other.id, role="Admin")
        )

        perms = await load_permissions(db, project.id, other.id, other.role)
        assert perms.creator_user_id == owner.id
        assert perms.can_manage_settings is True
