"""
Project management endpoints.

CRUD operations for projects, project members and project invitations.
"""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.database import get_db
from projecthub.core.dependencies import (
    ProjectAccess,
    get_current_user,
    get_org_membership,
    get_project_access,
)
from projecthub.core.permissions import require_org_membership, require_project_manager
from projecthub.models.member import OrganizationMember
from projecthub.models.user import User
from projecthub.schemas.common import ApiResponse, MessageResponse
from projecthub.schemas.project import (
    MyProjectRoleResponse,
    ProjectCreateRequest,
    ProjectInvitationResponse,
    ProjectInviteRequest,
    ProjectListResponse,
    ProjectMemberResponse,
    ProjectMemberRoleUpdateRequest,
    ProjectResponse,
    ProjectUpdateRequest,
)
from projecthub.services.invitation_service import InvitationService, ProjectInvitationStatus
from projecthub.services.project_service import ProjectService

router = APIRouter()

PROJECT_PATH = "/organizations/{org_id}/projects/{project_id}"


def get_project_service(db: AsyncSession = Depends(get_db)) -> ProjectService:
    return ProjectService(db=db)


def get_invitation_service(db: AsyncSession = Depends(get_db)) -> InvitationService:
    return InvitationService(db=db)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

@router.get(
    "/organizations/{org_id}/projects",
    response_model=ApiResponse[ProjectListResponse],
    summary="List projects in organization",
)
async def list_projects(
    org_id: UUID,
    search: str | None = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=20),
    include_members: bool = Query(default=False, alias="includeMembers"),
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[ProjectListResponse]:
    require_org_membership(org_member)
    return ApiResponse(
        data=await service.list_projects(org_id, search, page, limit, include_members)
    )


@router.post(
    "/organizations/{org_id}/projects",
    response_model=ApiResponse[ProjectResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a new project",
)
async def create_project(
    org_id: UUID,
    data: ProjectCreateRequest,
    current_user: User = Depends(get_current_user),
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[ProjectResponse]:
    """
    Create a project. Any organization member may create one.

    The creator becomes PROJECT_LEAD.
    """
    require_org_membership(org_member)
    return ApiResponse(data=await service.create_project(org_id, data, current_user))


@router.get(
    PROJECT_PATH,
    response_model=ApiResponse[ProjectResponse],
    summary="Get project detail",
)
async def get_project(
    org_id: UUID,
    project_id: UUID,
    include_members: bool = Query(default=False, alias="includeMembers"),
    access: ProjectAccess = Depends(get_project_access),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[ProjectResponse]:
    require_org_membership(access.org_member)
    return ApiResponse(data=await service.get_project(org_id, project_id, include_members))


@router.patch(
    PROJECT_PATH,
    response_model=ApiResponse[ProjectResponse],
    summary="Update project",
)
async def update_project(
    org_id: UUID,
    project_id: UUID,
    data: ProjectUpdateRequest,
    access: ProjectAccess = Depends(get_project_access),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[ProjectResponse]:
    """Requires PROJECT_LEAD or ORG_ADMIN."""
    require_project_manager(access.org_member, access.project_member)
    return ApiResponse(data=await service.update_project(org_id, project_id, data))


@router.delete(
    PROJECT_PATH,
    response_model=ApiResponse[MessageResponse],
    summary="Delete project",
)
async def delete_project(
    org_id: UUID,
    project_id: UUID,
    access: ProjectAccess = Depends(get_project_access),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[MessageResponse]:
    """Requires PROJECT_LEAD or ORG_ADMIN. Members and invitations go with it."""
    require_project_manager(access.org_member, access.project_member)
    await service.delete_project(org_id, project_id)
    return ApiResponse(data=MessageResponse(message="Project deleted successfully"))


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    PROJECT_PATH + "/members",
    response_model=ApiResponse[list[ProjectMemberResponse]],
    summary="List project members",
)
async def list_members(
    org_id: UUID,
    project_id: UUID,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[list[ProjectMemberResponse]]:
    require_org_membership(org_member)
    return ApiResponse(data=await service.list_members(org_id, project_id))


@router.get(
    PROJECT_PATH + "/members/me",
    response_model=ApiResponse[MyProjectRoleResponse],
    summary="Get the caller's project role",
)
async def get_my_role(
    org_id: UUID,
    project_id: UUID,
    access: ProjectAccess = Depends(get_project_access),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[MyProjectRoleResponse]:
    """Returns role null and isMember false when the caller is not on the project."""
    require_org_membership(access.org_member)
    return ApiResponse(data=await service.get_my_role(org_id, project_id, access.project_member))


@router.get(
    PROJECT_PATH + "/members/{member_id}",
    response_model=ApiResponse[ProjectMemberResponse],
    summary="Get a project member",
)
async def get_member(
    org_id: UUID,
    project_id: UUID,
    member_id: UUID,
    org_member: OrganizationMember | None = Depends(get_org_membership),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[ProjectMemberResponse]:
    require_org_membership(org_member)
    return ApiResponse(data=await service.get_member(org_id, project_id, member_id))


@router.patch(
    PROJECT_PATH + "/members/{member_id}",
    response_model=ApiResponse[ProjectMemberResponse],
    summary="Update a project member's role",
)
async def update_member_role(
    org_id: UUID,
    project_id: UUID,
    member_id: UUID,
    data: ProjectMemberRoleUpdateRequest,
    access: ProjectAccess = Depends(get_project_access),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[ProjectMemberResponse]:
    require_project_manager(access.org_member, access.project_member)
    return ApiResponse(
        data=await service.update_member_role(org_id, project_id, member_id, data.role)
    )


@router.delete(
    PROJECT_PATH + "/members/{member_id}",
    response_model=ApiResponse[MessageResponse],
    summary="Remove a project member",
)
async def remove_member(
    org_id: UUID,
    project_id: UUID,
    member_id: UUID,
    access: ProjectAccess = Depends(get_project_access),
    service: ProjectService = Depends(get_project_service),
) -> ApiResponse[MessageResponse]:
    """Self-removal is always allowed; removing others requires PROJECT_LEAD or ORG_ADMIN."""
    require_org_membership(access.org_member)
    await service.remove_member(
        org_id,
        project_id,
        member_id,
        access.org_member,
        access.project_member,
        access.user,
    )
    return ApiResponse(data=MessageResponse(message="Member removed"))


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

@router.get(
    PROJECT_PATH + "/invitations",
    response_model=ApiResponse[list[ProjectInvitationResponse]],
    summary="List project invitations",
)
async def list_invitations(
    org_id: UUID,
    project_id: UUID,
    invitation_status: ProjectInvitationStatus | None = Query(default=None, alias="status"),
    access: ProjectAccess = Depends(get_project_access),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[list[ProjectInvitationResponse]]:
    """Requires PROJECT_LEAD or ORG_ADMIN. `status` is pending, accepted or expired."""
    require_project_manager(access.org_member, access.project_member)
    return ApiResponse(
        data=await service.list_project_invitations(org_id, project_id, invitation_status)
    )


@router.post(
    PROJECT_PATH + "/invitations",
    response_model=ApiResponse[ProjectInvitationResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Invite an organization member to the project",
)
async def invite_to_project(
    org_id: UUID,
    project_id: UUID,
    data: ProjectInviteRequest,
    access: ProjectAccess = Depends(get_project_access),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[ProjectInvitationResponse]:
    """
    Requires PROJECT_LEAD or ORG_ADMIN.

    The invitee must already belong to the organization and must not be on
    the project yet.
    """
    require_project_manager(access.org_member, access.project_member)
    return ApiResponse(
        data=await service.invite_to_project(org_id, project_id, data, access.user)
    )


@router.delete(
    PROJECT_PATH + "/invitations/{invitation_id}",
    response_model=ApiResponse[MessageResponse],
    summary="Cancel a project invitation",
)
async def cancel_invitation(
    org_id: UUID,
    project_id: UUID,
    invitation_id: UUID,
    access: ProjectAccess = Depends(get_project_access),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[MessageResponse]:
    require_project_manager(access.org_member, access.project_member)
    await service.cancel_project_invitation(org_id, project_id, invitation_id)
    return ApiResponse(data=MessageResponse(message="Invitation cancelled"))
