"""
User ORM model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from projecthub.models.member import OrganizationMember
    from projecthub.models.project_member import ProjectMember


class User(Base, UUIDMixin, TimestampMixin):
    """A platform identity, created on first external sign-in."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # OAuth fields
    google_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    org_memberships: Mapped[list[OrganizationMember]] = relationship(
        "OrganizationMember", back_populates="user", cascade="all, delete-orphan"
    )
    project_memberships: Mapped[list[ProjectMember]] = relationship(
        "ProjectMember", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
