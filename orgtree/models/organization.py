"""Organization model and structural hierarchy queries"""

import logging
from typing import Iterator, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    inspect,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from orgtree.config import settings
from orgtree.models.base import BaseModel

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "


def _same_node(a: "Organization", b: "Organization") -> bool:
    """Identity test that also works for unsaved nodes"""
    if a is b:
        return True
    return a.id is not None and a.id == b.id


class Organization(BaseModel):
    """
    Organization model representing one node of the hierarchy
    (company, branch, department, division or sub-division).

    Nodes form a parent-pointer tree per tenant partition. Soft-deleted
    nodes keep their row but are invisible to every structural query.
    """

    __tablename__ = "organizations"
    __table_args__ = (
        UniqueConstraint(settings.tenant_column, "code", name="uq_organizations_tenant_code"),
    )

    tenant_id = Column(settings.tenant_column, String(64), nullable=True, index=True)
    parent_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    type = Column(String(50), nullable=False, index=True)  # see settings.organization_types
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(255), nullable=True)
    status = Column(String(50), default="active", nullable=False, index=True)
    manager_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    meta = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    created_by = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    deleted_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    parent = relationship("Organization", remote_side="Organization.id", back_populates="children")
    # Raw edge, soft-deleted rows included. Structural reads go through
    # active_children(); get_tree overwrites it with the live level it loaded.
    children = relationship("Organization", back_populates="parent", order_by="Organization.name")
    manager = relationship("User", foreign_keys=[manager_id])
    creator = relationship("User", foreign_keys=[created_by])
    updater = relationship("User", foreign_keys=[updated_by])
    user_assignments = relationship(
        "OrganizationUser", back_populates="organization", cascade="all, delete-orphan"
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    # ------------------------------------------------------------------
    # Parent chain
    # ------------------------------------------------------------------

    def _parent_node(self) -> Optional["Organization"]:
        """
        Resolve the live parent of this node.

        Uses the loaded ``parent`` relationship when present, otherwise fetches
        by id through the owning session. A missing, soft-deleted or
        unreachable parent ends the chain.
        """
        state = inspect(self)
        if "parent" in state.dict:
            parent = state.dict["parent"]
        elif state.session is not None:
            parent_id = self.parent_id
            parent = state.session.get(Organization, parent_id) if parent_id else None
        else:
            parent_id = state.dict.get("parent_id")
            parent = None
            if parent_id is not None:
                logger.debug(f"Organization {state.dict.get('id')} is detached, parent {parent_id} not loaded")

        if parent is None or parent.deleted_at is not None:
            return None
        return parent

    def _walk_up(self) -> Iterator["Organization"]:
        """Yield ancestors nearest first, bounded by max_hierarchy_depth"""
        visited = {id(self)}
        current = self._parent_node()
        steps = 0

        while current is not None:
            if id(current) in visited or steps >= settings.max_hierarchy_depth:
                logger.warning(
                    f"Parent chain of organization {self.id} exceeds depth guard or loops; "
                    f"stopping at {current.id}"
                )
                return
            visited.add(id(current))
            yield current
            steps += 1
            current = current._parent_node()

    def ancestors(self) -> List["Organization"]:
        """Ancestors from immediate parent to root (nearest first)"""
        return list(self._walk_up())

    def depth(self) -> int:
        """Number of ancestors; a root has depth 0"""
        return len(self.ancestors())

    def root(self) -> "Organization":
        ancestors = self.ancestors()
        return ancestors[-1] if ancestors else self

    def full_path(self) -> str:
        """Names from root to this node, e.g. 'Acme Corp > NY Branch > IT Dept'"""
        names = [ancestor.name for ancestor in reversed(self.ancestors())]
        names.append(self.name)
        return PATH_SEPARATOR.join(names)

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------

    def active_children(self) -> List["Organization"]:
        """Live direct children ordered by name"""
        state = inspect(self)
        if state.session is not None and state.persistent:
            return (
                state.session.query(Organization)
                .filter(
                    Organization.parent_id == self.id,
                    Organization.deleted_at.is_(None),
                )
                .order_by(Organization.name)
                .all()
            )

        loaded = state.dict.get("children") or []
        return sorted(
            (child for child in loaded if child.deleted_at is None),
            key=lambda child: child.name or "",
        )

    def descendants(self) -> List["Organization"]:
        """All live descendants, breadth first"""
        result = []
        seen = {id(self)}
        frontier = [self]

        while frontier:
            next_frontier = []
            for node in frontier:
                for child in node.active_children():
                    if id(child) in seen:
                        continue
                    seen.add(id(child))
                    result.append(child)
                    next_frontier.append(child)
            frontier = next_frontier

        return result

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def is_root(self) -> bool:
        state = inspect(self)
        if state.dict.get("parent") is not None:
            return False
        if state.session is None:
            return state.dict.get("parent_id") is None
        return self.parent_id is None

    def is_leaf(self) -> bool:
        return len(self.active_children()) == 0

    def is_child_of(self, other: Optional["Organization"]) -> bool:
        if other is None:
            return False
        parent = self._parent_node()
        return parent is not None and _same_node(parent, other)

    def is_parent_of(self, other: Optional["Organization"]) -> bool:
        return other is not None and other.is_child_of(self)

    def is_ancestor_of(self, other: Optional["Organization"]) -> bool:
        if other is None:
            return False
        return any(_same_node(ancestor, self) for ancestor in other._walk_up())

    def is_descendant_of(self, other: Optional["Organization"]) -> bool:
        if other is None:
            return False
        return any(_same_node(ancestor, other) for ancestor in self._walk_up())

    # ------------------------------------------------------------------
    # Managers
    # ------------------------------------------------------------------

    def managers(self) -> list:
        """Primary manager plus users holding the 'manager' role, without duplicates"""
        managers = []
        if self.manager is not None:
            managers.append(self.manager)

        seen = {m.id for m in managers}
        for assignment in self.user_assignments:
            if assignment.role == "manager" and assignment.user is not None:
                if assignment.user.id not in seen:
                    seen.add(assignment.user.id)
                    managers.append(assignment.user)

        return managers

    def __repr__(self):
        return f"<Organization(id={self.id}, code={self.code}, name={self.name})>"
