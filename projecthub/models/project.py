"""
Project ORM model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from projecthub.models.organization import Organization
    from projecthub.models.project_invitation import ProjectInvitation
    from projecthub.models.project_member import ProjectMember
    from projecthub.models.user import User


class Project(Base, UUIDMixin, TimestampMixin):
    """A unit of work inside one organization. `key` is unique per organization."""

    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("organization_id", "key", name="uq_projects_org_key"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    key: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(20), nullable=False, default="#3b82f6")
    created_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="projects"
    )
    created_by: Mapped[User | None] = relationship("User")
    members: Mapped[list[ProjectMember]] = relationship(
        "ProjectMember", back_populates="project", cascade="all, delete-orphan"
    )
    invitations: Mapped[list[ProjectInvitation]] = relationship(
        "ProjectInvitation", back_populates="project", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} key={self.key!r} organization_id={self.organization_id}>"
