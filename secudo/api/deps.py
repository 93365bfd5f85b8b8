"""Shared FastAPI dependencies and response helpers."""

from __future__ import annotations

from typing import Any

from fastapi import Request

from secudo.core.models import ProjectMembership
from secudo.rbac import ProjectRole, normalize_membership_role
from secudo.storage.database import Database
from secudo.trash import TrashManager


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_trash(request: Request) -> TrashManager:
    return request.app.state.trash


def member_view(member: ProjectMembership, creator_user_id: str | None) -> dict[str, Any]:
    """Serialize a membership with its normalized role."""
    return {
        "user_id": member.user_id,
        "role": str(normalize_membership_role(member.role) or ProjectRole.VIEWER),
        "is_creator": member.user_id == creator_user_id,
        "created_at": member.created_at.isoformat(),
        "user": {"id": member.user_id, "email": member.user_email, "name": member.user_name},
    }
