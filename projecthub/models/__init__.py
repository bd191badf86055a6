"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
Import order matters: base models before dependent models.
"""

from projecthub.models.base import Base, TimestampMixin, UUIDMixin
from projecthub.models.member import OrganizationMember, OrganizationRole
from projecthub.models.organization import Organization
from projecthub.models.user import User
from projecthub.models.invitation import OrganizationInvitation
from projecthub.models.project import Project
from projecthub.models.project_member import ProjectMember, ProjectRole
from projecthub.models.project_invitation import ProjectInvitation

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "Organization",
    "User",
    "OrganizationMember",
    "OrganizationRole",
    "OrganizationInvitation",
    "Project",
    "ProjectMember",
    "ProjectRole",
    "ProjectInvitation",
]
