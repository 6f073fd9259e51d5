"""Services package"""

from .hierarchy_service import HierarchyService
from .auth_service import AuthService

__all__ = ["HierarchyService", "AuthService"]
