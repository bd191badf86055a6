"""
Project schemas.

Request/response models for project CRUD, project members and project
invitations.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from projecthub.models.project_member import ProjectRole
from projecthub.schemas.common import CamelModel, Pagination, RequestModel, UserSummary

PROJECT_KEY_PATTERN = re.compile(r"[A-Za-z0-9]{2,10}")


def parse_project_role(value: Any) -> ProjectRole:
    try:
        return ProjectRole(value)
    except ValueError:
        raise ValueError("Invalid role")


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

class ProjectCreateRequest(RequestModel):
    """Request body for POST /organizations/{org_id}/projects."""

    name: str = Field(default=None, validate_default=True, max_length=100)
    key: str = Field(default=None, validate_default=True)
    description: str | None = None
    color: str | None = Field(default=None, max_length=20)

    @field_validator("name", mode="before")
    @classmethod
    def name_required(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Project name is required")
        return v.strip()

    @field_validator("key", mode="before")
    @classmethod
    def key_format(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Project key is required")
        if not PROJECT_KEY_PATTERN.fullmatch(v):
            raise ValueError("Key must be 2-10 alphanumeric characters")
        return v.upper()


class ProjectUpdateRequest(RequestModel):
    """
    Request body for PATCH /organizations/{org_id}/projects/{project_id}.

    Only fields present in the body are applied; a blank name is ignored.
    """

    name: str | None = Field(default=None, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, max_length=20)


class ProjectMemberResponse(CamelModel):
    id: UUID
    project_id: UUID
    user_id: UUID
    role: ProjectRole
    joined_at: datetime
    user: UserSummary


class ProjectResponse(CamelModel):
    id: UUID
    organization_id: UUID
    name: str
    key: str
    description: str | None
    color: str
    created_by_id: UUID | None
    created_at: datetime
    updated_at: datetime
    member_count: int = 0
    members: list[ProjectMemberResponse] | None = None


class ProjectListResponse(CamelModel):
    projects: list[ProjectResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class ProjectMemberRoleUpdateRequest(RequestModel):
    role: ProjectRole = Field(default=None, validate_default=True)

    @field_validator("role", mode="before")
    @classmethod
    def role_must_be_valid(cls, v: Any) -> ProjectRole:
        return parse_project_role(v)


class MyProjectRoleResponse(CamelModel):
    """The caller's own project role; role is None when not a member."""

    role: ProjectRole | None
    is_member: bool


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class ProjectInviteRequest(RequestModel):
    """Request body for POST .../projects/{project_id}/invitations."""

    user_id: UUID = Field(default=None, validate_default=True)
    role: ProjectRole = Field(default=None, validate_default=True)

    @field_validator("user_id", mode="before")
    @classmethod
    def user_id_required(cls, v: Any) -> Any:
        if v is None or v == "":
            raise ValueError("userId is required")
        return v

    @field_validator("role", mode="before")
    @classmethod
    def role_must_be_valid(cls, v: Any) -> ProjectRole:
        return parse_project_role(v)


class ProjectInvitationResponse(CamelModel):
    id: UUID
    project_id: UUID
    user_id: UUID
    role: ProjectRole
    invited_by_id: UUID | None
    expires_at: datetime
    accepted_at: datetime | None
    created_at: datetime
    user: UserSummary | None = None
