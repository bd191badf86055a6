"""
Authentication schemas.

Request/response models for sign-in, token refresh/logout, the current
user profile and e-mail verification codes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from projecthub.models.member import OrganizationRole
from projecthub.schemas.common import CamelModel, RequestModel


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

class TokenResponse(CamelModel):
    """Response for token refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token TTL in seconds")


class RefreshRequest(RequestModel):
    """Request body for POST /auth/refresh."""

    refresh_token: str


class LogoutRequest(RequestModel):
    """Request body for POST /auth/logout."""

    refresh_token: str


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

class OAuthGoogleRequest(RequestModel):
    """Request body for POST /auth/oauth/google (frontend sends ID token)."""

    id_token: str = Field(min_length=1, description="Google ID token from frontend OAuth flow")


class OAuthCallbackResponse(TokenResponse):
    """Response after successful OAuth authentication."""

    is_new_user: bool = Field(description="True if this is a newly created account")


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------

class MembershipSummary(CamelModel):
    organization_id: UUID
    organization_name: str
    role: OrganizationRole


class MeResponse(CamelModel):
    """Response for GET /auth/me: current user with org memberships."""

    id: UUID
    email: str
    display_name: str | None
    avatar_url: str | None
    email_verified: bool
    created_at: datetime
    organizations: list[MembershipSummary] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# E-mail verification
# ---------------------------------------------------------------------------

class OtpVerifyRequest(RequestModel):
    """Request body for POST /auth/otp/verify."""

    code: str = Field(default=None, validate_default=True)

    @field_validator("code", mode="before")
    @classmethod
    def code_must_be_six_chars(cls, v: Any) -> str:
        if not isinstance(v, str) or len(v) != 6:
            raise ValueError("Invalid OTP format")
        return v
