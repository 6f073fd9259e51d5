"""User model"""

from typing import Optional
from sqlalchemy import JSON, Column, String
from sqlalchemy.orm import relationship
from orgtree.models.base import BaseModel
from orgtree.models.has_organizations import HasOrganizations


class User(HasOrganizations, BaseModel):
    """
    User model representing application users.
    Users are assigned to organizations with roles and may carry
    coarse permission grants.
    """

    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    tenant_id = Column(String(64), nullable=True, index=True)
    permissions = Column(JSON, nullable=True)  # e.g. ["organization.create", "organization.view"]

    # Relationships
    organization_assignments = relationship(
        "OrganizationUser", back_populates="user", cascade="all, delete-orphan"
    )

    def can(self, permission: str) -> bool:
        """Check a coarse permission grant"""
        return permission in (self.permissions or [])

    def get_current_tenant_id(self) -> Optional[str]:
        return str(self.tenant_id) if self.tenant_id else None

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
