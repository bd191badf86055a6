"""
Authorization policy.

Pure decision functions over the caller's membership rows. They never touch
the database; callers load the rows (possibly concurrently) and pass them in.
The `require_*` helpers turn a negative decision into the two-tier
AuthorizationError: no membership at all is "Forbidden", a membership with
too low a role is "Forbidden: insufficient role".
"""

from __future__ import annotations

from uuid import UUID

from projecthub.core.exceptions import (
    FORBIDDEN,
    FORBIDDEN_INSUFFICIENT_ROLE,
    AuthorizationError,
)
from projecthub.models.member import OrganizationMember, OrganizationRole
from projecthub.models.project_member import ProjectMember, ProjectRole


def is_org_admin(org_member: OrganizationMember | None) -> bool:
    return org_member is not None and org_member.role == OrganizationRole.ORG_ADMIN


def is_project_lead(project_member: ProjectMember | None) -> bool:
    return project_member is not None and project_member.role == ProjectRole.PROJECT_LEAD


def can_manage_organization(org_member: OrganizationMember | None) -> bool:
    """Invite/cancel org invitations, change roles, remove other members."""
    return is_org_admin(org_member)


def can_manage_project(
    org_member: OrganizationMember | None,
    project_member: ProjectMember | None,
) -> bool:
    """Invite/cancel project invitations, manage project members, update/delete the project."""
    return is_org_admin(org_member) or is_project_lead(project_member)


def can_view_organization(org_member: OrganizationMember | None) -> bool:
    """Any membership grants read access and project creation."""
    return org_member is not None


def can_remove_org_member(
    org_member: OrganizationMember | None,
    target_user_id: UUID,
) -> bool:
    """Self-removal is always allowed; removing others requires admin."""
    if org_member is None:
        return False
    return org_member.user_id == target_user_id or can_manage_organization(org_member)


def can_remove_project_member(
    org_member: OrganizationMember | None,
    project_member: ProjectMember | None,
    target_user_id: UUID,
    caller_id: UUID,
) -> bool:
    if org_member is None:
        return False
    return caller_id == target_user_id or can_manage_project(org_member, project_member)


# ---------------------------------------------------------------------------
# Enforcement helpers
# ---------------------------------------------------------------------------

def require_org_membership(org_member: OrganizationMember | None) -> OrganizationMember:
    if not can_view_organization(org_member):
        raise AuthorizationError(FORBIDDEN)
    return org_member


def require_org_admin(org_member: OrganizationMember | None) -> OrganizationMember:
    member = require_org_membership(org_member)
    if not can_manage_organization(member):
        raise AuthorizationError(FORBIDDEN_INSUFFICIENT_ROLE)
    return member


def require_project_manager(
    org_member: OrganizationMember | None,
    project_member: ProjectMember | None,
) -> OrganizationMember:
    member = require_org_membership(org_member)
    if not can_manage_project(member, project_member):
        raise AuthorizationError(FORBIDDEN_INSUFFICIENT_ROLE)
    return member
