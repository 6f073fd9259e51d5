"""Organization membership queries for user models"""

from typing import List
from uuid import UUID
from sqlalchemy.orm import object_session

from orgtree.models.organization import Organization
from orgtree.models.organization_user import OrganizationUser


class HasOrganizations:
    """
    Mixin giving a user model the membership queries the access policy
    relies on. The host class must be mapped and expose an ``id`` column.
    """

    def _assignments_query(self, organization_id: UUID = None):
        session = object_session(self)
        if session is None:
            return None

        query = session.query(OrganizationUser).filter(OrganizationUser.user_id == self.id)
        if organization_id is not None:
            query = query.filter(OrganizationUser.organization_id == organization_id)
        return query

    def belongs_to_organization(self, organization_id: UUID) -> bool:
        """Check if the user holds any role in the organization"""
        query = self._assignments_query(organization_id)
        return query is not None and query.first() is not None

    def has_role_in_organization(self, organization_id: UUID, role: str) -> bool:
        """Check if the user holds a specific role in the organization"""
        query = self._assignments_query(organization_id)
        if query is None:
            return False
        return query.filter(OrganizationUser.role == role).first() is not None

    def get_roles_in_organization(self, organization_id: UUID) -> List[str]:
        """All roles the user holds in the organization"""
        query = self._assignments_query(organization_id)
        if query is None:
            return []
        return [assignment.role for assignment in query.order_by(OrganizationUser.role).all()]

    def is_primary_manager_of(self, organization_id: UUID) -> bool:
        """Check if the user is the primary manager of the organization"""
        session = object_session(self)
        if session is None:
            return False

        return (
            session.query(Organization.id)
            .filter(
                Organization.id == organization_id,
                Organization.manager_id == self.id,
                Organization.deleted_at.is_(None),
            )
            .first()
            is not None
        )

    def managed_organizations(self) -> List[Organization]:
        """Organizations where the user is the primary manager"""
        session = object_session(self)
        if session is None:
            return []

        return (
            session.query(Organization)
            .filter(
                Organization.manager_id == self.id,
                Organization.deleted_at.is_(None),
            )
            .order_by(Organization.name)
            .all()
        )

    def organizations_with_role(self, role: str) -> List[Organization]:
        """Organizations where the user holds the given role"""
        session = object_session(self)
        if session is None:
            return []

        return (
            session.query(Organization)
            .join(OrganizationUser, OrganizationUser.organization_id == Organization.id)
            .filter(
                OrganizationUser.user_id == self.id,
                OrganizationUser.role == role,
                Organization.deleted_at.is_(None),
            )
            .order_by(Organization.name)
            .all()
        )

    def get_management_organizations(self) -> List[Organization]:
        """Primary-managed organizations plus those with the 'manager' role"""
        organizations = {}
        for org in self.managed_organizations() + self.organizations_with_role("manager"):
            organizations.setdefault(org.id, org)
        return sorted(organizations.values(), key=lambda org: org.name)
