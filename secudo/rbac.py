"""Role-Based Access Control for Secudo.

Two independent role axes exist:

Global roles (account-wide, highest → lowest privilege):
    Admin   — Bypasses project visibility, manages users and all projects
    Editor  — May manage user roles (but never grant or revoke Admin)
    Viewer  — Default for every account

Project membership roles (scoped to one project):
    Admin   — Manage settings, members, trash/restore
    Editor  — Modify the system model and assessments
    Viewer  — Read-only membership

Stored role strings may come from older code or manual edits, so every
normalizer here is total: it never raises and falls back to the least
privileged interpretation.
"""

from __future__ import annotations

from enum import StrEnum


class GlobalRole(StrEnum):
    """Enumerated account-wide roles."""

    ADMIN = "Admin"
    EDITOR = "Editor"
    VIEWER = "Viewer"


class ProjectRole(StrEnum):
    """Enumerated per-project membership roles."""

    ADMIN = "Admin"
    EDITOR = "Editor"
    VIEWER = "Viewer"


#: Rank of each membership role; higher means more privilege.
ROLE_RANK: dict[ProjectRole, int] = {
    ProjectRole.VIEWER: 1,
    ProjectRole.EDITOR: 2,
    ProjectRole.ADMIN: 3,
}

_MEMBERSHIP_ALIASES: dict[str, ProjectRole] = {
    "admin": ProjectRole.ADMIN,
    "editor": ProjectRole.EDITOR,
    "viewer": ProjectRole.VIEWER,
    # Legacy stored value from before the Editor role existed.
    "user": ProjectRole.EDITOR,
}


# ---------------------------------------------------------------------------
# Global roles
# ---------------------------------------------------------------------------


def normalize_global_role(raw: str | None) -> GlobalRole:
    """Map a stored global role string onto :class:`GlobalRole`.

    ``admin`` and ``editor`` match case-insensitively; everything else,
    including ``None`` and unknown strings, becomes ``Viewer``.
    """
    if not isinstance(raw, str):
        return GlobalRole.VIEWER
    value = raw.lower()
    if value == "admin":
        return GlobalRole.ADMIN
    if value == "editor":
        return GlobalRole.EDITOR
    return GlobalRole.VIEWER


def is_global_admin(raw: str | None) -> bool:
    return normalize_global_role(raw) is GlobalRole.ADMIN


def can_manage_user_roles(raw: str | None) -> bool:
    return normalize_global_role(raw) in (GlobalRole.ADMIN, GlobalRole.EDITOR)


# ---------------------------------------------------------------------------
# Membership roles
# ---------------------------------------------------------------------------


def normalize_membership_role(raw: str | None) -> ProjectRole | None:
    """Map a stored membership role onto :class:`ProjectRole`.

    Unlike :func:`normalize_global_role` an unrecognized value yields
    ``None``: holding no valid membership is not the same as being a Viewer.
    """
    if not isinstance(raw, str):
        return None
    return _MEMBERSHIP_ALIASES.get(raw.lower())


def has_higher_or_equal_role(have: str | None, need: str | None) -> bool:
    """Return True when *have* ranks at least as high as *need*."""
    have_role = normalize_membership_role(have)
    need_role = normalize_membership_role(need)
    if have_role is None or need_role is None:
        return False
    return ROLE_RANK[have_role] >= ROLE_RANK[need_role]


def can_edit(role: str | None) -> bool:
    return normalize_membership_role(role) in (ProjectRole.ADMIN, ProjectRole.EDITOR)


def can_admin(role: str | None) -> bool:
    return normalize_membership_role(role) is ProjectRole.ADMIN


def can_view(role: str | None) -> bool:
    """Any recognized membership role can view."""
    return normalize_membership_role(role) is not None
