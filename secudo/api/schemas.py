"""Request bodies for the Secudo HTTP API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from secudo.norms import PROJECT_NORMS

ViewPolicyInput = Literal["any", "user", "viewer", "editor", "admin", "private"]
MemberRoleInput = Literal["Admin", "Editor", "Viewer", "User"]
GlobalRoleInput = Literal["Admin", "Editor", "Viewer"]


class RegisterRequest(BaseModel):
    first_name: str = Field(min_length=2, max_length=128)
    last_name: str = Field(min_length=2, max_length=128)
    email: EmailStr
    password: str = Field(min_length=8, max_length=256)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UpdateUserRoleRequest(BaseModel):
    role: GlobalRoleInput


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    description: str | None = Field(default=None, max_length=10_000)
    norm: str = Field(default="IEC 62443", max_length=256)
    norms: list[str] | None = None
    min_role_to_view: Literal["any", "viewer", "editor", "admin", "private"] = "any"

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("norms")
    @classmethod
    def known_norms(cls, v: list[str] | None) -> list[str] | None:
        if v is not None and any(n not in PROJECT_NORMS for n in v):
            raise ValueError(f"norms must be drawn from {', '.join(PROJECT_NORMS)}")
        return v


class UpdateProjectRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = Field(default=None, max_length=10_000)
    norm: str | None = Field(default=None, max_length=256)
    norms: list[str] | None = None
    min_role_to_view: ViewPolicyInput | None = None

    @field_validator("norms")
    @classmethod
    def known_norms(cls, v: list[str] | None) -> list[str] | None:
        if v is not None and any(n not in PROJECT_NORMS for n in v):
            raise ValueError(f"norms must be drawn from {', '.join(PROJECT_NORMS)}")
        return v


class InviteUser(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
    role: MemberRoleInput = "Viewer"


class InviteGroup(BaseModel):
    group_id: str = Field(min_length=1, max_length=128)
    role: MemberRoleInput = "Viewer"


_BULK_INVITE_FIELDS = frozenset(
    {"invited_users", "invited_groups", "invited_user_ids", "invited_group_ids"}
)


class AddMemberRequest(BaseModel):
    """Either one ``user_id`` to add, or invite lists that replace the roster.

    ``invited_user_ids`` and ``invited_group_ids`` are the older form of the
    lists and invite as Viewer.
    """

    user_id: str | None = Field(default=None, min_length=1, max_length=128)
    role: MemberRoleInput = "Viewer"
    invited_users: list[InviteUser] = Field(default_factory=list, max_length=1000)
    invited_groups: list[InviteGroup] = Field(default_factory=list, max_length=1000)
    invited_user_ids: list[str] = Field(default_factory=list, max_length=1000)
    invited_group_ids: list[str] = Field(default_factory=list, max_length=1000)

    @property
    def is_bulk(self) -> bool:
        return bool(self.model_fields_set & _BULK_INVITE_FIELDS)

    @model_validator(mode="after")
    def single_or_bulk(self) -> AddMemberRequest:
        if self.user_id is None and not self.is_bulk:
            raise ValueError("user_id or invite lists are required")
        if self.user_id is not None and self.is_bulk:
            raise ValueError("user_id cannot be combined with invite lists")
        return self


class UpdateMemberRoleRequest(BaseModel):
    role: MemberRoleInput


class CreateNodeRequest(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    category: str | None = Field(default=None, max_length=64)
    description: str | None = None
    notes: str | None = None
    parent_node_id: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class UpdateNodeRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    notes: str | None = None
    parent_node_id: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CreateSavepointRequest(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    snapshot: Any = None


class RiskScoreRequest(BaseModel):
    asset_value: int = Field(ge=1, le=10)
    finding_severity: int = Field(ge=1, le=10)


class RiskMatrixRequest(BaseModel):
    asset_values: list[int] = Field(default_factory=list, max_length=1000)
    finding_severities: list[int] = Field(default_factory=list, max_length=1000)

    @field_validator("asset_values", "finding_severities")
    @classmethod
    def ratings_in_range(cls, v: list[int]) -> list[int]:
        if any(not 1 <= r <= 10 for r in v):
            raise ValueError("ratings must be between 1 and 10")
        return v


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    description: str | None = Field(default=None, max_length=500)
    user_ids: list[str] = Field(default_factory=list, max_length=1000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class UpdateGroupRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=80)
    description: str | None = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @model_validator(mode="after")
    def has_changes(self) -> UpdateGroupRequest:
        if self.name is None and self.description is None:
            raise ValueError("At least one field must be provided")
        return self


class AddGroupMemberRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
