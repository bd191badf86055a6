"""
ProjectInvitation ORM model.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin
from projecthub.models.project_member import ProjectRole

if TYPE_CHECKING:
    from projecthub.models.project import Project
    from projecthub.models.user import User


class ProjectInvitation(Base, UUIDMixin, TimestampMixin):
    """
    Pending offer for an existing user to join a project.

    Targets a user id, not an e-mail: the invitee must already belong to
    the project's organization. One row per (project, user).
    """

    __tablename__ = "project_invitations"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_invitations_project_user"),
    )

    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[ProjectRole] = mapped_column(
        Enum(ProjectRole, name="project_role"), nullable=False
    )
    invited_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    project: Mapped[Project] = relationship("Project", back_populates="invitations")
    user: Mapped[User] = relationship("User", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return f"<ProjectInvitation id={self.id} project_id={self.project_id} user_id={self.user_id}>"
