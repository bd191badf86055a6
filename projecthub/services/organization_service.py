"""
Organization business logic.

Handles org creation, listing, member management and the last-admin rule.
All queries scoped by organization_id.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.exceptions import (
    FORBIDDEN_INSUFFICIENT_ROLE,
    AuthorizationError,
    ConflictError,
    NotFoundError,
)
from projecthub.core.permissions import can_remove_org_member
from projecthub.models.member import OrganizationMember, OrganizationRole
from projecthub.models.organization import Organization
from projecthub.models.user import User
from projecthub.schemas.common import Pagination, UserSummary
from projecthub.schemas.organization import (
    MemberResponse,
    MembersListResponse,
    OrganizationCreateRequest,
    OrganizationListResponse,
    OrganizationResponse,
)
from projecthub.services.invitation_service import InvitationService

logger = logging.getLogger(__name__)

LAST_ADMIN_MESSAGE = "Cannot remove the last organization admin"


def member_response(member: OrganizationMember, user: User) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        user_id=member.user_id,
        organization_id=member.organization_id,
        role=member.role,
        joined_at=member.joined_at,
        user=UserSummary.model_validate(user),
    )


class OrganizationService:
    """Handles all organization operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(
        self, data: OrganizationCreateRequest, owner: User
    ) -> OrganizationResponse:
        """
        Create a new organization.

        - Creates organization record
        - Assigns creator as ORG_ADMIN in the same commit
        """
        org = Organization(name=data.name, is_active=True)
        self.db.add(org)
        await self.db.flush()

        member = OrganizationMember(
            organization_id=org.id,
            user_id=owner.id,
            role=OrganizationRole.ORG_ADMIN,
        )
        self.db.add(member)
        await self.db.commit()

        logger.info("Organization %s created by user %s", org.id, owner.id)
        return OrganizationResponse(
            id=org.id,
            name=org.name,
            is_active=org.is_active,
            role=OrganizationRole.ORG_ADMIN,
            member_count=1,
        )

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    def _member_count_subquery(self):
        return (
            select(
                OrganizationMember.organization_id,
                func.count(OrganizationMember.id).label("member_count"),
            )
            .group_by(OrganizationMember.organization_id)
            .subquery()
        )

    async def list_organizations(self, user: User) -> OrganizationListResponse:
        """Organizations the user belongs to, with the user's role in each."""
        counts = self._member_count_subquery()
        result = await self.db.execute(
            select(Organization, OrganizationMember.role, counts.c.member_count)
            .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
            .join(counts, counts.c.organization_id == Organization.id)
            .where(OrganizationMember.user_id == user.id)
            .order_by(OrganizationMember.joined_at)
        )
        return OrganizationListResponse(
            organizations=[
                OrganizationResponse(
                    id=org.id,
                    name=org.name,
                    is_active=org.is_active,
                    role=role,
                    member_count=count,
                )
                for org, role, count in result.all()
            ]
        )

    async def get_organization(
        self, org_id: UUID, org_member: OrganizationMember | None
    ) -> OrganizationResponse:
        """Organization detail. Non-members get the same 404 as a missing org."""
        if org_member is None:
            raise NotFoundError("Organization not found or access denied")

        org = await self.db.get(Organization, org_id)
        if org is None:
            raise NotFoundError("Organization not found or access denied")

        member_count = await self.db.scalar(
            select(func.count(OrganizationMember.id)).where(
                OrganizationMember.organization_id == org_id
            )
        )
        return OrganizationResponse(
            id=org.id,
            name=org.name,
            is_active=org.is_active,
            role=org_member.role,
            member_count=member_count or 0,
        )

    async def get_organization_row(self, org_id: UUID) -> Organization:
        org = await self.db.get(Organization, org_id)
        if org is None:
            raise NotFoundError("Organization not found or access denied")
        return org

    # -----------------------------------------------------------------------
    # List Members
    # -----------------------------------------------------------------------

    async def list_members(
        self,
        org_id: UUID,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> MembersListResponse:
        """
        Members (admins first, then by join date) plus live pending invitations.

        `search` matches display name or e-mail, case-insensitively.
        """
        page = max(1, page)
        limit = min(100, max(1, limit))

        filters = [OrganizationMember.organization_id == org_id]
        if search:
            term = search.strip()
            filters.append(
                or_(
                    User.display_name.icontains(term, autoescape=True),
                    User.email.icontains(term, autoescape=True),
                )
            )

        total = await self.db.scalar(
            select(func.count(OrganizationMember.id))
            .join(User, OrganizationMember.user_id == User.id)
            .where(*filters)
        )

        result = await self.db.execute(
            select(OrganizationMember, User)
            .join(User, OrganizationMember.user_id == User.id)
            .where(*filters)
            .order_by(OrganizationMember.role, OrganizationMember.joined_at)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        members = [member_response(member, user) for member, user in result.all()]

        invitations = await InvitationService(self.db).list_organization_invitations(org_id)

        return MembersListResponse(
            members=members,
            invitations=invitations,
            pagination=Pagination.build(page, limit, total or 0),
        )

    # -----------------------------------------------------------------------
    # Update Member Role / Remove Member
    # -----------------------------------------------------------------------

    async def _get_member(self, org_id: UUID, member_id: UUID) -> tuple[OrganizationMember, User]:
        result = await self.db.execute(
            select(OrganizationMember, User)
            .join(User, OrganizationMember.user_id == User.id)
            .where(
                OrganizationMember.id == member_id,
                OrganizationMember.organization_id == org_id,
            )
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Member not found")
        return row[0], row[1]

    async def _admin_count(self, org_id: UUID) -> int:
        count = await self.db.scalar(
            select(func.count(OrganizationMember.id)).where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.role == OrganizationRole.ORG_ADMIN,
            )
        )
        return count or 0

    async def update_member_role(
        self, org_id: UUID, member_id: UUID, new_role: OrganizationRole
    ) -> MemberResponse:
        """
        Change a member's role.

        Demoting the only remaining ORG_ADMIN is rejected.
        """
        target, user = await self._get_member(org_id, member_id)

        if (
            target.role == OrganizationRole.ORG_ADMIN
            and new_role != OrganizationRole.ORG_ADMIN
            and await self._admin_count(org_id) <= 1
        ):
            raise ConflictError(LAST_ADMIN_MESSAGE)

        target.role = new_role
        await self.db.flush()

        logger.info("Member %s in org %s set to %s", member_id, org_id, new_role.value)
        return member_response(target, user)

    async def remove_member(
        self, org_id: UUID, member_id: UUID, acting_member: OrganizationMember
    ) -> None:
        """
        Remove a member from the organization.

        - Anyone may remove themselves
        - Removing someone else requires ORG_ADMIN
        - The last ORG_ADMIN cannot be removed
        """
        target, _ = await self._get_member(org_id, member_id)

        if not can_remove_org_member(acting_member, target.user_id):
            raise AuthorizationError(FORBIDDEN_INSUFFICIENT_ROLE)

        if target.role == OrganizationRole.ORG_ADMIN and await self._admin_count(org_id) <= 1:
            raise ConflictError(LAST_ADMIN_MESSAGE)

        await self.db.delete(target)
        await self.db.flush()
        logger.info("Member %s removed from org %s", member_id, org_id)
