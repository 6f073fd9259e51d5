"""Database models package"""

from orgtree.models.base import BaseModel
from orgtree.models.tenant import Tenant
from orgtree.models.organization import Organization, PATH_SEPARATOR
from orgtree.models.organization_user import OrganizationUser
from orgtree.models.has_organizations import HasOrganizations
from orgtree.models.user import User

# Export all models
__all__ = [
    "BaseModel",
    "Tenant",
    "Organization",
    "PATH_SEPARATOR",
    "OrganizationUser",
    "HasOrganizations",
    "User",
]
