"""
Organization management endpoints.

Create, list, detail, member management, organization invitations.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.database import get_db
from projecthub.core.dependencies import get_current_user, get_org_membership
from projecthub.core.permissions import require_org_admin, require_org_membership
from projecthub.models.member import OrganizationMember
from projecthub.models.user import User
from projecthub.schemas.common import ApiResponse, MessageResponse
from projecthub.schemas.organization import (
    InvitationResponse,
    InviteRequest,
    InviteResultResponse,
    MemberResponse,
    MemberRoleUpdateRequest,
    MembersListResponse,
    OrganizationCreateRequest,
    OrganizationListResponse,
    OrganizationResponse,
)
from projecthub.services.invitation_service import InvitationService
from projecthub.services.organization_service import OrganizationService

router = APIRouter()


def get_org_service(db: AsyncSession = Depends(get_db)) -> OrganizationService:
    """Dependency that constructs OrganizationService."""
    return OrganizationService(db=db)


def get_invitation_service(db: AsyncSession = Depends(get_db)) -> InvitationService:
    return InvitationService(db=db)


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ApiResponse[OrganizationResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> ApiResponse[OrganizationResponse]:
    """
    Create a new organization.

    Creator is automatically assigned the ORG_ADMIN role.
    """
    return ApiResponse(data=await service.create_organization(data, current_user))


@router.get(
    "",
    response_model=ApiResponse[OrganizationListResponse],
    summary="List the caller's organizations",
)
async def list_organizations(
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> ApiResponse[OrganizationListResponse]:
    return ApiResponse(data=await service.list_organizations(current_user))


@router.get(
    "/{org_id}",
    response_model=ApiResponse[OrganizationResponse],
    summary="Get organization detail",
)
async def get_organization(
    org_id: UUID,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: OrganizationService = Depends(get_org_service),
) -> ApiResponse[OrganizationResponse]:
    """Get organization details. Non-members see a 404."""
    return ApiResponse(data=await service.get_organization(org_id, org_member))


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/members",
    response_model=ApiResponse[MembersListResponse],
    summary="List organization members and pending invitations",
)
async def list_members(
    org_id: UUID,
    search: str | None = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=20),
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: OrganizationService = Depends(get_org_service),
) -> ApiResponse[MembersListResponse]:
    """Any member may list. `limit` is clamped to 1..100."""
    require_org_membership(org_member)
    return ApiResponse(data=await service.list_members(org_id, search, page, limit))


@router.patch(
    "/{org_id}/members/{member_id}",
    response_model=ApiResponse[MemberResponse],
    summary="Update a member's role",
)
async def update_member_role(
    org_id: UUID,
    member_id: UUID,
    data: MemberRoleUpdateRequest,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: OrganizationService = Depends(get_org_service),
) -> ApiResponse[MemberResponse]:
    """
    Change a member's role. Requires ORG_ADMIN.

    The last ORG_ADMIN cannot be demoted.
    """
    require_org_admin(org_member)
    return ApiResponse(data=await service.update_member_role(org_id, member_id, data.role))


@router.delete(
    "/{org_id}/members/{member_id}",
    response_model=ApiResponse[MessageResponse],
    summary="Remove a member from the organization",
)
async def remove_member(
    org_id: UUID,
    member_id: UUID,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: OrganizationService = Depends(get_org_service),
) -> ApiResponse[MessageResponse]:
    """
    Remove a member from the organization.

    - Members may remove themselves
    - ORG_ADMIN may remove anyone except the last admin
    """
    acting_member = require_org_membership(org_member)
    await service.remove_member(org_id, member_id, acting_member)
    return ApiResponse(data=MessageResponse(message="Member removed"))


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/invitations",
    response_model=ApiResponse[list[InvitationResponse]],
    summary="List pending invitations",
)
async def list_invitations(
    org_id: UUID,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[list[InvitationResponse]]:
    require_org_membership(org_member)
    return ApiResponse(data=await service.list_organization_invitations(org_id))


@router.post(
    "/{org_id}/invitations",
    response_model=ApiResponse[InviteResultResponse],
    summary="Invite e-mail addresses to the organization",
)
async def invite_members(
    org_id: UUID,
    data: InviteRequest,
    current_user: User = Depends(get_current_user),
    org_member: OrganizationMember | None = Depends(get_org_membership),
    org_service: OrganizationService = Depends(get_org_service),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[InviteResultResponse]:
    """
    Invite a batch of e-mail addresses. Requires ORG_ADMIN.

    Each address is reported in exactly one of success, failed,
    alreadyMember or alreadyInvited.
    """
    require_org_admin(org_member)
    organization = await org_service.get_organization_row(org_id)
    return ApiResponse(
        data=await service.create_organization_invitations(organization, data, current_user)
    )


@router.get(
    "/{org_id}/invitations/{invitation_id}",
    response_model=ApiResponse[InvitationResponse],
    summary="Get an invitation",
)
async def get_invitation(
    org_id: UUID,
    invitation_id: UUID,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[InvitationResponse]:
    require_org_membership(org_member)
    return ApiResponse(data=await service.get_organization_invitation(org_id, invitation_id))


@router.delete(
    "/{org_id}/invitations/{invitation_id}",
    response_model=ApiResponse[MessageResponse],
    summary="Cancel a pending invitation",
)
async def cancel_invitation(
    org_id: UUID,
    invitation_id: UUID,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[MessageResponse]:
    """Cancel a pending invitation. Requires ORG_ADMIN."""
    require_org_admin(org_member)
    await service.cancel_organization_invitation(org_id, invitation_id)
    return ApiResponse(data=MessageResponse(message="Invitation cancelled"))
