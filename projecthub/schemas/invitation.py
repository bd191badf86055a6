"""
Invitee-side invitation schemas.

Used by the endpoints where the invited user lists, accepts or rejects
invitations across both scopes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator

from projecthub.schemas.common import CamelModel, OrganizationSummary, ProjectSummary, RequestModel

InvitationType = Literal["organization", "project"]
InvitationAction = Literal["accept", "reject"]


class AcceptInvitationRequest(RequestModel):
    """Request body for POST /invitations/accept."""

    token: str = Field(default=None, validate_default=True)

    @field_validator("token", mode="before")
    @classmethod
    def token_required(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Invitation token is required")
        return v.strip()


class InvitationActionRequest(RequestModel):
    """Request body for POST /user/invitations/{invitation_id}."""

    action: InvitationAction = Field(default=None, validate_default=True)
    type: InvitationType = "organization"

    @field_validator("action", mode="before")
    @classmethod
    def action_must_be_valid(cls, v: Any) -> str:
        if v not in ("accept", "reject"):
            raise ValueError("Invalid action")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def type_must_be_valid(cls, v: Any) -> str:
        if v not in ("organization", "project"):
            raise ValueError("Invalid invitation type")
        return v


class UserInvitationResponse(CamelModel):
    """A pending invitation addressed to the caller, from either scope."""

    id: UUID
    type: InvitationType
    role: str
    expires_at: datetime
    created_at: datetime
    organization: OrganizationSummary
    project: ProjectSummary | None = None


class UserInvitationListResponse(CamelModel):
    invitations: list[UserInvitationResponse]


class InvitationActionResponse(CamelModel):
    """Result of accepting or rejecting an invitation."""

    message: str
    type: InvitationType
    membership_id: UUID | None = None
    organization: OrganizationSummary | None = None
    project: ProjectSummary | None = None
