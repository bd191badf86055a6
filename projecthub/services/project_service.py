"""
Project business logic.

Handles project CRUD and project membership.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.core.config import settings
from projecthub.core.exceptions import (
    FORBIDDEN_INSUFFICIENT_ROLE,
    AuthorizationError,
    ConflictError,
    NotFoundError,
)
from projecthub.core.permissions import can_remove_project_member
from projecthub.models.member import OrganizationMember
from projecthub.models.project import Project
from projecthub.models.project_member import ProjectMember, ProjectRole
from projecthub.models.user import User
from projecthub.schemas.common import Pagination, UserSummary
from projecthub.schemas.project import (
    MyProjectRoleResponse,
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectMemberResponse,
    ProjectResponse,
    ProjectUpdateRequest,
)

logger = logging.getLogger(__name__)

DUPLICATE_KEY_MESSAGE = "A project with this key already exists in the organization"


def project_member_response(member: ProjectMember, user: User) -> ProjectMemberResponse:
    return ProjectMemberResponse(
        id=member.id,
        project_id=member.project_id,
        user_id=member.user_id,
        role=member.role,
        joined_at=member.joined_at,
        user=UserSummary.model_validate(user),
    )


def project_response(
    project: Project,
    member_count: int,
    members: list[ProjectMemberResponse] | None = None,
) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        organization_id=project.organization_id,
        name=project.name,
        key=project.key,
        description=project.description,
        color=project.color,
        created_by_id=project.created_by_id,
        created_at=project.created_at,
        updated_at=project.updated_at,
        member_count=member_count,
        members=members,
    )


class ProjectService:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

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

    async def _member_count(self, project_id: UUID) -> int:
        count = await self.db.scalar(
            select(func.count(ProjectMember.id)).where(ProjectMember.project_id == project_id)
        )
        return count or 0

    async def _members(self, project_ids: list[UUID]) -> dict[UUID, list[ProjectMemberResponse]]:
        grouped: dict[UUID, list[ProjectMemberResponse]] = {pid: [] for pid in project_ids}
        if not project_ids:
            return grouped
        result = await self.db.execute(
            select(ProjectMember, User)
            .join(User, ProjectMember.user_id == User.id)
            .where(ProjectMember.project_id.in_(project_ids))
            .order_by(ProjectMember.joined_at)
        )
        for member, user in result.all():
            grouped[member.project_id].append(project_member_response(member, user))
        return grouped

    # -----------------------------------------------------------------------
    # Projects
    # -----------------------------------------------------------------------

    async def list_projects(
        self,
        org_id: UUID,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
        include_members: bool = False,
    ) -> ProjectListResponse:
        page = max(1, page)
        limit = min(100, max(1, limit))

        filters = [Project.organization_id == org_id]
        if search:
            term = search.strip()
            filters.append(
                or_(
                    Project.name.icontains(term, autoescape=True),
                    Project.key.icontains(term, autoescape=True),
                )
            )

        total = await self.db.scalar(select(func.count(Project.id)).where(*filters))

        counts = (
            select(ProjectMember.project_id, func.count(ProjectMember.id).label("member_count"))
            .group_by(ProjectMember.project_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Project, func.coalesce(counts.c.member_count, 0))
            .outerjoin(counts, counts.c.project_id == Project.id)
            .where(*filters)
            .order_by(Project.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = result.all()

        members = await self._members([p.id for p, _ in rows]) if include_members else None

        return ProjectListResponse(
            projects=[
                project_response(p, count, members[p.id] if members is not None else None)
                for p, count in rows
            ],
            pagination=Pagination.build(page, limit, total or 0),
        )

    async def create_project(
        self, org_id: UUID, data: ProjectCreateRequest, creator: User
    ) -> ProjectResponse:
        """
        Create a project and make its creator PROJECT_LEAD.

        Both rows are written in one commit. The key is already uppercased
        by the request schema, so uniqueness is case-insensitive.
        """
        existing = await self.db.execute(
            select(Project.id).where(
                Project.organization_id == org_id,
                Project.key == data.key,
            )
        )
        if existing.first() is not None:
            raise ConflictError(DUPLICATE_KEY_MESSAGE)

        project = Project(
            organization_id=org_id,
            name=data.name,
            key=data.key,
            description=data.description.strip() if data.description else data.description,
            color=data.color or settings.DEFAULT_PROJECT_COLOR,
            created_by_id=creator.id,
        )
        self.db.add(project)
        await self.db.flush()

        self.db.add(
            ProjectMember(
                project_id=project.id,
                user_id=creator.id,
                role=ProjectRole.PROJECT_LEAD,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(DUPLICATE_KEY_MESSAGE)

        logger.info("Project %s (%s) created in org %s", project.id, project.key, org_id)
        return project_response(project, member_count=1)

    async def get_project(
        self, org_id: UUID, project_id: UUID, include_members: bool = False
    ) -> ProjectResponse:
        project = await self._get_project(org_id, project_id)
        members = (await self._members([project.id]))[project.id] if include_members else None
        return project_response(project, await self._member_count(project.id), members)

    async def update_project(
        self, org_id: UUID, project_id: UUID, data: ProjectUpdateRequest
    ) -> ProjectResponse:
        """Apply the fields present in the request. A blank name is ignored."""
        project = await self._get_project(org_id, project_id)
        provided = data.model_fields_set

        if data.name is not None and data.name.strip():
            project.name = data.name.strip()
        if "description" in provided:
            project.description = data.description.strip() if data.description else None
        if "color" in provided and data.color is not None:
            project.color = data.color

        await self.db.flush()
        await self.db.refresh(project)
        return project_response(project, await self._member_count(project.id))

    async def delete_project(self, org_id: UUID, project_id: UUID) -> None:
        """Delete a project together with its members and invitations."""
        result = await self.db.execute(
            select(Project)
            .options(selectinload(Project.members), selectinload(Project.invitations))
            .where(
                Project.id == project_id,
                Project.organization_id == org_id,
            )
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise NotFoundError("Project not found")

        await self.db.delete(project)
        await self.db.flush()
        logger.info("Project %s deleted from org %s", project_id, org_id)

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def list_members(self, org_id: UUID, project_id: UUID) -> list[ProjectMemberResponse]:
        project = await self._get_project(org_id, project_id)
        return (await self._members([project.id]))[project.id]

    async def _get_member(
        self, project_id: UUID, member_id: UUID
    ) -> tuple[ProjectMember, User]:
        result = await self.db.execute(
            select(ProjectMember, User)
            .join(User, ProjectMember.user_id == User.id)
            .where(
                ProjectMember.id == member_id,
                ProjectMember.project_id == project_id,
            )
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Member not found")
        return row[0], row[1]

    async def get_member(
        self, org_id: UUID, project_id: UUID, member_id: UUID
    ) -> ProjectMemberResponse:
        await self._get_project(org_id, project_id)
        member, user = await self._get_member(project_id, member_id)
        return project_member_response(member, user)

    async def get_my_role(
        self, org_id: UUID, project_id: UUID, project_member: ProjectMember | None
    ) -> MyProjectRoleResponse:
        await self._get_project(org_id, project_id)
        if project_member is None:
            return MyProjectRoleResponse(role=None, is_member=False)
        return MyProjectRoleResponse(role=project_member.role, is_member=True)

    async def update_member_role(
        self, org_id: UUID, project_id: UUID, member_id: UUID, new_role: ProjectRole
    ) -> ProjectMemberResponse:
        await self._get_project(org_id, project_id)
        member, user = await self._get_member(project_id, member_id)

        member.role = new_role
        await self.db.flush()

        logger.info("Project member %s in project %s set to %s", member_id, project_id, new_role.value)
        return project_member_response(member, user)

    async def remove_member(
        self,
        org_id: UUID,
        project_id: UUID,
        member_id: UUID,
        org_member: OrganizationMember | None,
        caller_project_member: ProjectMember | None,
        caller: User,
    ) -> None:
        """
        Remove a project member.

        Anyone may remove themselves; removing others requires PROJECT_LEAD
        or ORG_ADMIN. Removing the last lead is allowed.
        """
        await self._get_project(org_id, project_id)
        member, _ = await self._get_member(project_id, member_id)

        if not can_remove_project_member(
            org_member, caller_project_member, member.user_id, caller.id
        ):
            raise AuthorizationError(FORBIDDEN_INSUFFICIENT_ROLE)

        await self.db.delete(member)
        await self.db.flush()
        logger.info("Member %s removed from project %s", member_id, project_id)
