"""User groups and bulk project invites.

The reserved *Everyone* group is never stored: inviting its id expands to
every registered user at invite time.  Its name cannot be taken by a real
group, compared case-insensitively after trimming.

When a user is reached by several invites (directly, through one or more
groups, through Everyone) they receive the highest of the invited roles.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from secudo.rbac import ROLE_RANK, ProjectRole, normalize_membership_role

EVERYONE_GROUP_ID = "__system_everyone__"
EVERYONE_GROUP_NAME = "Everyone"
EVERYONE_GROUP_DESCRIPTION = "Includes all registered users."


def is_everyone_group_id(group_id: str) -> bool:
    return group_id == EVERYONE_GROUP_ID


def is_everyone_group_name(name: str) -> bool:
    return name.strip().lower() == EVERYONE_GROUP_NAME.lower()


def higher_invite_role(left: ProjectRole, right: ProjectRole) -> ProjectRole:
    """Return the more privileged of two invite roles (ties keep *left*)."""
    return right if ROLE_RANK[right] > ROLE_RANK[left] else left


def merge_invites(invites: Iterable[tuple[str, ProjectRole]]) -> dict[str, ProjectRole]:
    """Collapse ``(id, role)`` pairs, keeping the highest role per id.

    Ids are trimmed; blank ids are skipped.  First-seen order is kept.
    """
    merged: dict[str, ProjectRole] = {}
    for raw_id, role in invites:
        key = raw_id.strip()
        if not key:
            continue
        merged[key] = higher_invite_role(merged[key], role) if key in merged else role
    return merged


def resolve_member_roles(
    *,
    creator_user_id: str | None,
    user_roles: Mapping[str, ProjectRole],
    group_roles: Mapping[str, ProjectRole],
    group_members: Mapping[str, Iterable[str]],
    all_user_ids: Iterable[str] = (),
    actor_id: str | None = None,
    actor_membership_role: str | None = None,
) -> dict[str, ProjectRole]:
    """Compute the complete member list a bulk invite produces.

    * the creator is always Admin, whatever the invites say;
    * direct invites set a role; group and Everyone invites only raise it;
    * an acting member who is not the creator keeps at least their role,
      so a manager cannot drop themselves out of the project by omission.

    *group_members* maps each real invited group to its members;
    *all_user_ids* is consulted only when the Everyone group is invited.
    """
    target: dict[str, ProjectRole] = {}
    if creator_user_id:
        target[creator_user_id] = ProjectRole.ADMIN

    def raise_to(user_id: str, role: ProjectRole) -> None:
        if user_id == creator_user_id:
            return
        target[user_id] = higher_invite_role(target[user_id], role) if user_id in target else role

    for user_id, role in user_roles.items():
        if user_id != creator_user_id:
            target[user_id] = role

    for group_id, members in group_members.items():
        role = group_roles.get(group_id, ProjectRole.VIEWER)
        for user_id in members:
            raise_to(user_id, role)

    everyone_role = group_roles.get(EVERYONE_GROUP_ID)
    if everyone_role is not None:
        for user_id in all_user_ids:
            raise_to(user_id, everyone_role)

    if actor_id and actor_membership_role is not None:
        raise_to(actor_id, normalize_membership_role(actor_membership_role) or ProjectRole.VIEWER)

    return target
