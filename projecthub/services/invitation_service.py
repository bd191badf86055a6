"""
Invitation business logic.

One state machine, two scopes:

- organization invitations target an e-mail address (the invitee may not
  have signed in yet) and are keyed by (email, organization);
- project invitations target an existing user who already belongs to the
  project's organization and are keyed by (project, user).

Both are created or refreshed in place, accepted atomically together with
the membership row they grant, and rejected or cancelled by hard delete.
Expiry is evaluated lazily against `expires_at`; nothing sweeps old rows.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.core.config import settings
from projecthub.core.dependencies import load_org_member, load_project_member
from projecthub.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from projecthub.models.base import utcnow
from projecthub.models.invitation import OrganizationInvitation
from projecthub.models.member import OrganizationMember, OrganizationRole
from projecthub.models.organization import Organization
from projecthub.models.project import Project
from projecthub.models.project_invitation import ProjectInvitation
from projecthub.models.project_member import ProjectMember
from projecthub.models.user import User
from projecthub.schemas.common import OrganizationSummary, ProjectSummary, UserSummary
from projecthub.schemas.invitation import (
    InvitationActionResponse,
    UserInvitationListResponse,
    UserInvitationResponse,
)
from projecthub.schemas.organization import (
    FailedInvite,
    InvitationResponse,
    InviteRequest,
    InviteResultResponse,
)
from projecthub.schemas.project import ProjectInvitationResponse, ProjectInviteRequest
from projecthub.services.email_dispatch import dispatch
from projecthub.workers.email_tasks import send_invitation_email, send_project_invitation_email

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class InviteOutcome(str, Enum):
    CREATED = "created"
    REFRESHED = "refreshed"
    ALREADY_MEMBER = "already_member"


class ProjectInvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


def invitation_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.INVITATION_EXPIRY_DAYS)


def is_live(expires_at: datetime, accepted_at: datetime | None, now: datetime) -> bool:
    """Pending and not yet past expiry. An invitation expiring exactly now is live."""
    return accepted_at is None and expires_at >= now


def org_invitation_response(
    invitation: OrganizationInvitation,
    organization: Organization | None = None,
) -> InvitationResponse:
    return InvitationResponse(
        id=invitation.id,
        organization_id=invitation.organization_id,
        email=invitation.email,
        role=invitation.role,
        expires_at=invitation.expires_at,
        accepted_at=invitation.accepted_at,
        created_at=invitation.created_at,
        updated_at=invitation.updated_at,
        organization=OrganizationSummary.model_validate(organization) if organization else None,
    )


def project_invitation_response(
    invitation: ProjectInvitation,
    user: User | None = None,
) -> ProjectInvitationResponse:
    return ProjectInvitationResponse(
        id=invitation.id,
        project_id=invitation.project_id,
        user_id=invitation.user_id,
        role=invitation.role,
        invited_by_id=invitation.invited_by_id,
        expires_at=invitation.expires_at,
        accepted_at=invitation.accepted_at,
        created_at=invitation.created_at,
        user=UserSummary.model_validate(user) if user else None,
    )


def project_summary(project: Project) -> ProjectSummary:
    return ProjectSummary(
        id=project.id,
        name=project.name,
        key=project.key,
        organization_id=project.organization_id,
    )


class InvitationService:
    """Create, list, accept, reject and cancel invitations in both scopes."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------------------------------------------------
    # Organization scope: admin side
    # -----------------------------------------------------------------------

    async def create_organization_invitations(
        self, organization: Organization, data: InviteRequest, inviter: User
    ) -> InviteResultResponse:
        """
        Invite a batch of e-mail addresses.

        Each address is handled and committed on its own, so one bad address
        never undoes the others. Every address ends up in exactly one list of
        the result.
        """
        # Plain values: a per-address rollback expires loaded instances.
        org_id = organization.id
        org_name = organization.name
        inviter_id = inviter.id
        inviter_name = inviter.display_name or inviter.email

        result = InviteResultResponse()

        for raw_email in data.emails:
            email = raw_email.strip().lower()
            if not EMAIL_PATTERN.match(email):
                result.failed.append(FailedInvite(email=raw_email, reason="Invalid email format"))
                continue

            try:
                outcome, invitation_id = await self._upsert_organization_invitation(
                    org_id, email, data.role, inviter_id
                )
            except SQLAlchemyError:
                await self.db.rollback()
                logger.exception("Failed to create invitation in org %s", org_id)
                result.failed.append(FailedInvite(email=email, reason="Failed to create invitation"))
                continue

            if outcome is InviteOutcome.ALREADY_MEMBER:
                result.already_member.append(email)
                continue

            if outcome is InviteOutcome.REFRESHED:
                result.already_invited.append(email)
            else:
                result.success.append(email)

            logger.info(
                "Organization invitation %s %s in org %s", invitation_id, outcome.value, org_id
            )
            dispatch(
                send_invitation_email,
                to_email=email,
                org_name=org_name,
                inviter_name=inviter_name,
                role=data.role.value,
                invitation_id=str(invitation_id),
                frontend_url=settings.FRONTEND_URL,
            )

        return result

    async def _upsert_organization_invitation(
        self,
        org_id: UUID,
        email: str,
        role: OrganizationRole,
        inviter_id: UUID,
    ) -> tuple[InviteOutcome, UUID | None]:
        member = await self.db.execute(
            select(OrganizationMember.id)
            .join(User, OrganizationMember.user_id == User.id)
            .where(
                OrganizationMember.organization_id == org_id,
                User.email == email,
            )
        )
        if member.first() is not None:
            return InviteOutcome.ALREADY_MEMBER, None

        now = utcnow()
        existing = await self.db.execute(
            select(OrganizationInvitation).where(
                OrganizationInvitation.organization_id == org_id,
                OrganizationInvitation.email == email,
            )
        )
        invitation = existing.scalar_one_or_none()

        if invitation is None:
            invitation = OrganizationInvitation(
                organization_id=org_id,
                email=email,
                role=role,
                invited_by_id=inviter_id,
                expires_at=invitation_expiry(now),
            )
            self.db.add(invitation)
            outcome = InviteOutcome.CREATED
        else:
            was_live = is_live(invitation.expires_at, invitation.accepted_at, now)
            invitation.role = role
            invitation.invited_by_id = inviter_id
            invitation.expires_at = invitation_expiry(now)
            invitation.accepted_at = None
            outcome = InviteOutcome.REFRESHED if was_live else InviteOutcome.CREATED

        await self.db.commit()
        return outcome, invitation.id

    async def list_organization_invitations(self, org_id: UUID) -> list[InvitationResponse]:
        """Live pending invitations, newest first."""
        result = await self.db.execute(
            select(OrganizationInvitation)
            .where(
                OrganizationInvitation.organization_id == org_id,
                OrganizationInvitation.accepted_at.is_(None),
                OrganizationInvitation.expires_at >= utcnow(),
            )
            .order_by(OrganizationInvitation.created_at.desc())
        )
        return [org_invitation_response(inv) for inv in result.scalars().all()]

    async def _get_organization_invitation(
        self, org_id: UUID, invitation_id: UUID
    ) -> OrganizationInvitation:
        result = await self.db.execute(
            select(OrganizationInvitation)
            .options(selectinload(OrganizationInvitation.organization))
            .where(
                OrganizationInvitation.id == invitation_id,
                OrganizationInvitation.organization_id == org_id,
            )
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError("Invitation not found")
        return invitation

    async def get_organization_invitation(
        self, org_id: UUID, invitation_id: UUID
    ) -> InvitationResponse:
        invitation = await self._get_organization_invitation(org_id, invitation_id)
        return org_invitation_response(invitation, invitation.organization)

    async def cancel_organization_invitation(self, org_id: UUID, invitation_id: UUID) -> None:
        invitation = await self._get_organization_invitation(org_id, invitation_id)
        if invitation.accepted_at is not None:
            raise ConflictError("Cannot cancel an already accepted invitation")

        await self.db.delete(invitation)
        await self.db.flush()
        logger.info("Organization invitation %s cancelled in org %s", invitation_id, org_id)

    # -----------------------------------------------------------------------
    # Project scope: lead/admin side
    # -----------------------------------------------------------------------

    async def _get_project(self, org_id: UUID, project_id: UUID) -> Project:
        result = await self.db.execute(
            select(Project).where(
                Project.id == project_id,
                Project.organization_id == org_id,
            )
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def invite_to_project(
        self,
        org_id: UUID,
        project_id: UUID,
        data: ProjectInviteRequest,
        inviter: User,
    ) -> ProjectInvitationResponse:
        """
        Invite an organization member to a project.

        Re-inviting the same user refreshes the existing row (role, expiry)
        and clears any previous acceptance.
        """
        project = await self._get_project(org_id, project_id)

        if await load_org_member(self.db, data.user_id, org_id) is None:
            raise ValidationError("User is not a member of this organization")

        if await load_project_member(self.db, data.user_id, project_id) is not None:
            raise ConflictError("User is already a project member")

        now = utcnow()
        existing = await self.db.execute(
            select(ProjectInvitation).where(
                ProjectInvitation.project_id == project_id,
                ProjectInvitation.user_id == data.user_id,
            )
        )
        invitation = existing.scalar_one_or_none()

        if invitation is None:
            invitation = ProjectInvitation(
                project_id=project_id,
                user_id=data.user_id,
                role=data.role,
                invited_by_id=inviter.id,
                expires_at=invitation_expiry(now),
            )
            self.db.add(invitation)
        else:
            invitation.role = data.role
            invitation.invited_by_id = inviter.id
            invitation.expires_at = invitation_expiry(now)
            invitation.accepted_at = None

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("User is already invited to this project")

        invitee = await self.db.get(User, data.user_id)
        logger.info("Project invitation %s sent in project %s", invitation.id, project_id)

        if invitee is not None:
            dispatch(
                send_project_invitation_email,
                to_email=invitee.email,
                project_name=project.name,
                project_key=project.key,
                inviter_name=inviter.display_name or inviter.email,
                role=data.role.value,
                frontend_url=settings.FRONTEND_URL,
            )

        return project_invitation_response(invitation, invitee)

    async def list_project_invitations(
        self,
        org_id: UUID,
        project_id: UUID,
        status: ProjectInvitationStatus | None = None,
    ) -> list[ProjectInvitationResponse]:
        await self._get_project(org_id, project_id)

        now = utcnow()
        query = (
            select(ProjectInvitation, User)
            .join(User, ProjectInvitation.user_id == User.id)
            .where(ProjectInvitation.project_id == project_id)
            .order_by(ProjectInvitation.created_at.desc())
        )
        if status is ProjectInvitationStatus.PENDING:
            query = query.where(
                ProjectInvitation.accepted_at.is_(None),
                ProjectInvitation.expires_at > now,
            )
        elif status is ProjectInvitationStatus.ACCEPTED:
            query = query.where(ProjectInvitation.accepted_at.is_not(None))
        elif status is ProjectInvitationStatus.EXPIRED:
            query = query.where(
                ProjectInvitation.accepted_at.is_(None),
                ProjectInvitation.expires_at <= now,
            )

        result = await self.db.execute(query)
        return [project_invitation_response(inv, user) for inv, user in result.all()]

    async def cancel_project_invitation(
        self, org_id: UUID, project_id: UUID, invitation_id: UUID
    ) -> None:
        await self._get_project(org_id, project_id)

        result = await self.db.execute(
            select(ProjectInvitation).where(
                ProjectInvitation.id == invitation_id,
                ProjectInvitation.project_id == project_id,
            )
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.accepted_at is not None:
            raise ConflictError("Cannot cancel an already accepted invitation")

        await self.db.delete(invitation)
        await self.db.flush()
        logger.info("Project invitation %s cancelled in project %s", invitation_id, project_id)

    # -----------------------------------------------------------------------
    # Invitee side
    # -----------------------------------------------------------------------

    async def list_user_invitations(
        self, user: User, org_id: UUID | None = None
    ) -> UserInvitationListResponse:
        """Live pending invitations addressed to `user`, both scopes, newest first."""
        now = utcnow()

        org_query = (
            select(OrganizationInvitation, Organization)
            .join(Organization, OrganizationInvitation.organization_id == Organization.id)
            .where(
                OrganizationInvitation.email == user.email.lower(),
                OrganizationInvitation.accepted_at.is_(None),
                OrganizationInvitation.expires_at >= now,
            )
        )
        project_query = (
            select(ProjectInvitation, Project, Organization)
            .join(Project, ProjectInvitation.project_id == Project.id)
            .join(Organization, Project.organization_id == Organization.id)
            .where(
                ProjectInvitation.user_id == user.id,
                ProjectInvitation.accepted_at.is_(None),
                ProjectInvitation.expires_at >= now,
            )
        )
        if org_id is not None:
            org_query = org_query.where(OrganizationInvitation.organization_id == org_id)
            project_query = project_query.where(Project.organization_id == org_id)

        invitations = [
            UserInvitationResponse(
                id=inv.id,
                type="organization",
                role=inv.role.value,
                expires_at=inv.expires_at,
                created_at=inv.created_at,
                organization=OrganizationSummary.model_validate(org),
            )
            for inv, org in (await self.db.execute(org_query)).all()
        ]
        invitations.extend(
            UserInvitationResponse(
                id=inv.id,
                type="project",
                role=inv.role.value,
                expires_at=inv.expires_at,
                created_at=inv.created_at,
                organization=OrganizationSummary.model_validate(org),
                project=project_summary(project),
            )
            for inv, project, org in (await self.db.execute(project_query)).all()
        )
        invitations.sort(key=lambda i: i.created_at, reverse=True)
        return UserInvitationListResponse(invitations=invitations)

    async def _load_invitation_for_organization_invitee(
        self, invitation_id: UUID, user: User
    ) -> OrganizationInvitation:
        result = await self.db.execute(
            select(OrganizationInvitation)
            .options(selectinload(OrganizationInvitation.organization))
            .where(OrganizationInvitation.id == invitation_id)
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.email != user.email.lower():
            raise AuthorizationError("This invitation is not for you")
        return invitation

    async def _load_invitation_for_project_invitee(
        self, invitation_id: UUID, user: User
    ) -> ProjectInvitation:
        result = await self.db.execute(
            select(ProjectInvitation)
            .options(selectinload(ProjectInvitation.project))
            .where(ProjectInvitation.id == invitation_id)
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.user_id != user.id:
            raise AuthorizationError("This invitation is not for you")
        return invitation

    @staticmethod
    def _check_acceptable(expires_at: datetime, accepted_at: datetime | None) -> None:
        # Accepted is checked first so a replay always reports the same error,
        # even once the invitation has also passed its expiry.
        if accepted_at is not None:
            raise ConflictError("Invitation already accepted")
        if expires_at < utcnow():
            raise ConflictError("Invitation has expired")

    async def accept_organization_invitation(
        self, invitation_id: UUID, user: User
    ) -> InvitationActionResponse:
        """
        Accept an organization invitation.

        The membership row and `accepted_at` are written in one commit.
        """
        invitation = await self._load_invitation_for_organization_invitee(invitation_id, user)
        self._check_acceptable(invitation.expires_at, invitation.accepted_at)

        if await load_org_member(self.db, user.id, invitation.organization_id) is not None:
            raise ConflictError("Already a member of this organization")

        membership = OrganizationMember(
            organization_id=invitation.organization_id,
            user_id=user.id,
            role=invitation.role,
        )
        self.db.add(membership)
        invitation.accepted_at = utcnow()

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Already a member of this organization")

        logger.info(
            "Organization invitation %s accepted by user %s", invitation.id, membership.user_id
        )
        return InvitationActionResponse(
            message="Invitation accepted successfully",
            type="organization",
            membership_id=membership.id,
            organization=OrganizationSummary.model_validate(invitation.organization),
        )

    async def accept_project_invitation(
        self, invitation_id: UUID, user: User
    ) -> InvitationActionResponse:
        """Accept a project invitation; same atomicity as the organization scope."""
        invitation = await self._load_invitation_for_project_invitee(invitation_id, user)
        self._check_acceptable(invitation.expires_at, invitation.accepted_at)

        if await load_project_member(self.db, user.id, invitation.project_id) is not None:
            raise ConflictError("Already a member of this project")

        membership = ProjectMember(
            project_id=invitation.project_id,
            user_id=user.id,
            role=invitation.role,
        )
        self.db.add(membership)
        invitation.accepted_at = utcnow()

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Already a member of this project")

        logger.info("Project invitation %s accepted by user %s", invitation.id, membership.user_id)
        return InvitationActionResponse(
            message="Project invitation accepted successfully",
            type="project",
            membership_id=membership.id,
            project=project_summary(invitation.project),
        )

    async def reject_organization_invitation(
        self, invitation_id: UUID, user: User
    ) -> InvitationActionResponse:
        invitation = await self._load_invitation_for_organization_invitee(invitation_id, user)
        if invitation.accepted_at is not None:
            raise ConflictError("Invitation already accepted")

        await self.db.delete(invitation)
        await self.db.flush()
        logger.info("Organization invitation %s rejected", invitation_id)
        return InvitationActionResponse(message="Invitation rejected", type="organization")

    async def reject_project_invitation(
        self, invitation_id: UUID, user: User
    ) -> InvitationActionResponse:
        invitation = await self._load_invitation_for_project_invitee(invitation_id, user)
        if invitation.accepted_at is not None:
            raise ConflictError("Invitation already accepted")

        await self.db.delete(invitation)
        await self.db.flush()
        logger.info("Project invitation %s rejected", invitation_id)
        return InvitationActionResponse(message="Project invitation rejected", type="project")

    async def accept_by_token(self, token: str, user: User) -> InvitationActionResponse:
        """Accept an organization invitation using the token from the invitation e-mail."""
        try:
            invitation_id = UUID(token)
        except ValueError:
            raise NotFoundError("Invitation not found")
        return await self.accept_organization_invitation(invitation_id, user)
