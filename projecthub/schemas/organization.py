"""
Organization schemas.

Request/response models for organization, member and invitation endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from projecthub.models.member import OrganizationRole
from projecthub.schemas.common import (
    CamelModel,
    OrganizationSummary,
    Pagination,
    RequestModel,
    UserSummary,
)


def parse_org_role(value: Any) -> OrganizationRole:
    try:
        return OrganizationRole(value)
    except ValueError:
        raise ValueError("Invalid role")


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(RequestModel):
    """Request body for POST /organizations."""

    name: str = Field(default=None, validate_default=True, max_length=100)

    @field_validator("name", mode="before")
    @classmethod
    def name_required(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Organization name is required")
        return v.strip()


class OrganizationResponse(CamelModel):
    """Organization as seen by one of its members."""

    id: UUID
    name: str
    is_active: bool
    role: OrganizationRole
    member_count: int


class OrganizationListResponse(CamelModel):
    organizations: list[OrganizationResponse]


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MemberResponse(CamelModel):
    """Single org member with user info and role."""

    id: UUID
    user_id: UUID
    organization_id: UUID
    role: OrganizationRole
    joined_at: datetime
    user: UserSummary


class MemberRoleUpdateRequest(RequestModel):
    """Request body for PATCH /organizations/{org_id}/members/{member_id}."""

    role: OrganizationRole = Field(default=None, validate_default=True)

    @field_validator("role", mode="before")
    @classmethod
    def role_must_be_valid(cls, v: Any) -> OrganizationRole:
        return parse_org_role(v)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InviteRequest(RequestModel):
    """Request body for POST /organizations/{org_id}/invitations."""

    emails: list[str] = Field(default=None, validate_default=True)
    role: OrganizationRole = OrganizationRole.ORG_MEMBER

    @field_validator("emails", mode="before")
    @classmethod
    def emails_required(cls, v: Any) -> list[str]:
        if not isinstance(v, list) or len(v) == 0:
            raise ValueError("Emails array is required")
        return [e if isinstance(e, str) else str(e) for e in v]

    @field_validator("role", mode="before")
    @classmethod
    def role_must_be_valid(cls, v: Any) -> OrganizationRole:
        return parse_org_role(v)


class InvitationResponse(CamelModel):
    """Organization invitation detail."""

    id: UUID
    organization_id: UUID
    email: str
    role: OrganizationRole
    expires_at: datetime
    accepted_at: datetime | None
    created_at: datetime
    updated_at: datetime
    organization: OrganizationSummary | None = None


class FailedInvite(CamelModel):
    email: str
    reason: str


class InviteResultResponse(CamelModel):
    """Per-address tally for a batch invite. Every address lands in exactly one list."""

    success: list[str] = Field(default_factory=list)
    failed: list[FailedInvite] = Field(default_factory=list)
    already_member: list[str] = Field(default_factory=list)
    already_invited: list[str] = Field(default_factory=list)


class MembersListResponse(CamelModel):
    """Response for GET /organizations/{org_id}/members."""

    members: list[MemberResponse]
    invitations: list[InvitationResponse]
    pagination: Pagination
