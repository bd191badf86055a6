"""
Invitee-side invitation endpoints.

The invited user lists their pending invitations and accepts or rejects
them, in either scope.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.database import get_db
from projecthub.core.dependencies import get_current_user
from projecthub.models.user import User
from projecthub.schemas.common import ApiResponse
from projecthub.schemas.invitation import (
    AcceptInvitationRequest,
    InvitationActionRequest,
    InvitationActionResponse,
    UserInvitationListResponse,
)
from projecthub.services.invitation_service import InvitationService

router = APIRouter()


def get_invitation_service(db: AsyncSession = Depends(get_db)) -> InvitationService:
    return InvitationService(db=db)


@router.post(
    "/invitations/accept",
    response_model=ApiResponse[InvitationActionResponse],
    summary="Accept an organization invitation by token",
)
async def accept_invitation(
    data: AcceptInvitationRequest,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[InvitationActionResponse]:
    """
    Accept the invitation referenced by the token in the invitation e-mail.

    The caller must be signed in with the invited e-mail address.
    """
    return ApiResponse(data=await service.accept_by_token(data.token, current_user))


@router.get(
    "/user/invitations",
    response_model=ApiResponse[UserInvitationListResponse],
    summary="List the caller's pending invitations",
)
async def list_my_invitations(
    org_id: UUID | None = Query(default=None, alias="orgId"),
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[UserInvitationListResponse]:
    """Both scopes in one list; each entry carries a `type` of organization or project."""
    return ApiResponse(data=await service.list_user_invitations(current_user, org_id))


@router.post(
    "/user/invitations/{invitation_id}",
    response_model=ApiResponse[InvitationActionResponse],
    summary="Accept or reject an invitation",
)
async def respond_to_invitation(
    invitation_id: UUID,
    data: InvitationActionRequest,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> ApiResponse[InvitationActionResponse]:
    if data.type == "project":
        if data.action == "accept":
            result = await service.accept_project_invitation(invitation_id, current_user)
        else:
            result = await service.reject_project_invitation(invitation_id, current_user)
    elif data.action == "accept":
        result = await service.accept_organization_invitation(invitation_id, current_user)
    else:
        result = await service.reject_organization_invitation(invitation_id, current_user)
    return ApiResponse(data=result)
