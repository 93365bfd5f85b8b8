"""Domain models for Secudo projects and their access-control data.

- User: account with a (possibly malformed) stored global role
- Project: system under assessment, with visibility policy and soft-delete marker
- ProjectMembership: per-project role; the earliest membership is the creator
- ModelNode: container/component in the project's system model forest
- Savepoint: named snapshot of the serialized system model
- UserGroup / GroupMember: named sets of users used for bulk project invites
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def to_timestamp(value: datetime) -> str:
    """Serialize *value* as fixed-width UTC ISO-8601 so stored strings sort chronologically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class NodeCategory(str, Enum):
    CONTAINER = "Container"
    COMPONENT = "Component"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class User(BaseModel):
    """Registered account.  ``role`` is stored verbatim and normalized on read."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    email: str
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = "Viewer"
    created_at: datetime = Field(default_factory=utcnow)


class Project(BaseModel):
    """A modelled system.  ``deleted_at`` set means the project is in the trash."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    norm: str = "IEC 62443"
    min_role_to_view: str = "any"
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ProjectMembership(BaseModel):
    """Join record between a user and a project, unique per pair."""

    project_id: str
    user_id: str
    role: str
    created_at: datetime = Field(default_factory=utcnow)
    user_email: str | None = None
    user_name: str | None = None


class ModelNode(BaseModel):
    """Node of the system model.  ``parent_node_id`` links form a forest per project."""

    id: str = Field(default_factory=new_id)
    project_id: str
    name: str
    category: NodeCategory = NodeCategory.COMPONENT
    description: str | None = None
    notes: str | None = None
    parent_node_id: str | None = None
    created_by_user_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Savepoint(BaseModel):
    """Stored snapshot of a project's canonical model."""

    id: str = Field(default_factory=new_id)
    project_id: str
    title: str
    model_json: str = Field(exclude=True)
    created_by_user_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class GroupMember(BaseModel):
    """A user's membership in a :class:`UserGroup`."""

    group_id: str
    user_id: str
    added_at: datetime = Field(default_factory=utcnow)
    user_email: str | None = None
    user_name: str | None = None
    user_role: str | None = None


class UserGroup(BaseModel):
    """Named set of users; names are unique."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    created_by_user_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    members: list[GroupMember] = Field(default_factory=list)
