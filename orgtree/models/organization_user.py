"""Organization-user assignment model"""

from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship
from orgtree.database import Base


class OrganizationUser(Base):
    """
    Many-to-many assignment of users to organizations.
    The role is part of the key, so one user may hold several roles
    in the same organization.
    """

    __tablename__ = "organization_user"

    organization_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    role = Column(String(50), primary_key=True)  # manager, supervisor, coordinator, assistant, member
    assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="user_assignments")
    user = relationship("User", back_populates="organization_assignments")

    def __repr__(self):
        return (
            f"<OrganizationUser(organization_id={self.organization_id}, "
            f"user_id={self.user_id}, role={self.role})>"
        )
