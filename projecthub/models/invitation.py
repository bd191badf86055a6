"""
OrganizationInvitation ORM model.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from projecthub.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin
from projecthub.models.member import OrganizationRole

if TYPE_CHECKING:
    from projecthub.models.organization import Organization


class OrganizationInvitation(Base, UUIDMixin, TimestampMixin):
    """
    Pending offer for an e-mail address to join an organization.

    The row id doubles as the accept token. One row per (email, organization):
    re-inviting refreshes the row instead of inserting a second one.
    """

    __tablename__ = "organization_invitations"
    __table_args__ = (
        UniqueConstraint("email", "organization_id", name="uq_organization_invitations_email_org"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[OrganizationRole] = mapped_column(
        Enum(OrganizationRole, name="organization_role"), nullable=False
    )
    invited_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="invitations"
    )

    def __repr__(self) -> str:
        return f"<OrganizationInvitation id={self.id} email={self.email!r} organization_id={self.organization_id}>"
