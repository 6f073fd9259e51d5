"""Hierarchy service: transactional mutations and aggregate reads over organizations"""

import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.attributes import set_committed_value

from orgtree.config import Settings, settings
from orgtree.events import (
    EventDispatcher,
    ManagerAssigned,
    ManagerRemoved,
    OrganizationCreated,
    OrganizationDeleted,
    OrganizationUpdated,
)
from orgtree.exceptions import DuplicateCode, NotFound, StructuralConflict, ValidationError
from orgtree.models.organization import Organization
from orgtree.models.organization_user import OrganizationUser
from orgtree.models.user import User
from orgtree.monitoring.metrics import MetricsTimer, metrics_collector
from orgtree.tenancy import TenantContext

logger = logging.getLogger(__name__)

# Attributes a caller may set through create/update
WRITABLE_FIELDS = (
    "parent_id",
    "type",
    "name",
    "code",
    "description",
    "address",
    "phone",
    "email",
    "website",
    "manager_id",
    "status",
    "meta",
)

MAX_LENGTHS = {
    "name": 255,
    "code": 50,
    "description": 1000,
    "phone": 50,
    "email": 255,
    "website": 255,
}


def _coerce_uuid(value: Any, field: str) -> Optional[UUID]:
    """Convert an identifier to UUID, raising a field-level ValidationError"""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError.for_field(field, f"'{value}' is not a valid identifier")


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class HierarchyService:
    """
    Service for creating, reshaping and querying the organization hierarchy.

    Every write runs in a single transaction against the session: all of its
    steps commit together or the session is rolled back. Reads and writes are
    scoped to the tenant resolved by the injected TenantContext, and
    soft-deleted organizations are never returned.
    """

    def __init__(
        self,
        db: Session,
        tenant: TenantContext,
        actor: Optional[Any] = None,
        events: Optional[EventDispatcher] = None,
        user_model: type = User,
        config: Settings = settings,
    ):
        """
        Args:
            db: Database session
            tenant: Tenant context of the current unit of work
            actor: Authenticated user performing the operations, if any
            events: Dispatcher notified after each committed write
            user_model: Mapped user class providing id, name and email
            config: Application settings
        """
        self.db = db
        self.tenant = tenant
        self.actor = actor
        self.events = events or EventDispatcher()
        self.user_model = user_model
        self.config = config

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _actor_id(self) -> Optional[UUID]:
        return self.actor.id if self.actor is not None else None

    @contextmanager
    def _transaction(self):
        """Commit on success, roll back and re-raise on any failure"""
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _flush(self, code: Optional[str] = None) -> None:
        try:
            self.db.flush()
        except IntegrityError as e:
            if code is not None and "code" in str(e.orig).lower():
                raise DuplicateCode(code) from e
            raise ValidationError(f"Integrity violation: {e.orig}") from e

    def _query(self):
        """Live organizations of the active tenant"""
        query = self.db.query(Organization).filter(Organization.deleted_at.is_(None))
        return self.tenant.apply(query, Organization.tenant_id)

    def _find(self, organization_id: Any, field: str = "id") -> Optional[Organization]:
        organization_id = _coerce_uuid(organization_id, field)
        return self._query().filter(Organization.id == organization_id).first()

    def _find_user(self, user_id: Any, field: str = "user_id") -> Optional[Any]:
        return self.db.get(self.user_model, _coerce_uuid(user_id, field))

    def _ensure_visible(self, org: Organization) -> None:
        """Reject organizations that are soft-deleted or outside the active tenant"""
        tenant_id = self.tenant.resolve()
        if org.deleted_at is not None or (tenant_id is not None and org.tenant_id != tenant_id):
            raise NotFound(f"Organization {org.id} not found")

    def _ensure_unique_code(
        self, code: str, tenant_id: Optional[str], exclude_id: Optional[UUID] = None
    ) -> None:
        # Soft-deleted rows still hold their code
        query = self.db.query(Organization.id).filter(Organization.code == code)
        if self.tenant.is_enabled():
            query = query.filter(Organization.tenant_id == tenant_id)
        if exclude_id is not None:
            query = query.filter(Organization.id != exclude_id)

        if query.first() is not None:
            raise DuplicateCode(code)

    def _validate(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        """
        Validate create/update input.

        Args:
            data: Raw attribute values
            partial: True for updates, where every field is optional

        Returns:
            The writable subset of data, with identifiers coerced to UUID

        Raises:
            ValidationError: With one entry per offending field
        """
        payload = {key: value for key, value in data.items() if key in WRITABLE_FIELDS}
        errors = []

        if not partial:
            payload.setdefault("status", "active")
            for field in ("type", "name", "code"):
                if not payload.get(field):
                    errors.append({"field": field, "message": f"The {field} field is required."})

        for field in ("type", "name", "code", "status"):
            if partial and field in payload and not payload[field]:
                errors.append({"field": field, "message": f"The {field} field is required."})

        for field in ("type", "name", "code", "status"):
            if payload.get(field) and not isinstance(payload[field], str):
                errors.append({"field": field, "message": f"The {field} must be a string."})

        type_ = payload.get("type")
        if type_ and isinstance(type_, str) and type_ not in self.config.organization_types:
            errors.append({"field": "type", "message": "The selected type is invalid."})

        status_ = payload.get("status")
        if status_ and isinstance(status_, str) and status_ not in self.config.organization_statuses:
            errors.append({"field": "status", "message": "The selected status is invalid."})

        for field, limit in MAX_LENGTHS.items():
            value = payload.get(field)
            if value is not None and len(str(value)) > limit:
                errors.append(
                    {"field": field, "message": f"The {field} may not be greater than {limit} characters."}
                )

        if payload.get("meta") is not None and not isinstance(payload["meta"], dict):
            errors.append({"field": "meta", "message": "The meta field must be an object."})

        for field in ("parent_id", "manager_id"):
            if field in payload:
                try:
                    payload[field] = _coerce_uuid(payload[field], field)
                except ValidationError as e:
                    errors.extend(e.errors)

        if errors:
            raise ValidationError("Validation failed", errors=errors)

        return payload

    def _locked(self, organization_id: UUID) -> Optional[Organization]:
        """Re-read a row from the database and hold its lock until commit"""
        return (
            self.db.query(Organization)
            .filter(Organization.id == organization_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _ancestor_ids(self, node: Organization) -> List[UUID]:
        """
        Walk parent pointers upward with fresh, locked reads.

        Must run inside the writing transaction so a concurrent reparent
        either is already visible or waits for the lock.

        Raises:
            StructuralConflict: If the chain loops or exceeds max_hierarchy_depth
        """
        ids = []
        current = self._locked(node.id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in ids or current.parent_id == node.id:
                raise StructuralConflict(f"Parent chain of organization {node.id} contains a cycle")
            if len(ids) >= self.config.max_hierarchy_depth:
                raise StructuralConflict(
                    f"Parent chain of organization {node.id} exceeds "
                    f"{self.config.max_hierarchy_depth} levels"
                )
            ids.append(current.parent_id)
            current = self._locked(current.parent_id)
        return ids

    def _assert_no_cycle(self, org: Organization, new_parent: Organization) -> None:
        """
        Reject a new parent that is org itself or one of its descendants.

        Locks org first, then every row on the new parent's chain.
        """
        self._locked(org.id)
        if new_parent.id == org.id:
            metrics_collector.record_structural_conflict()
            logger.warning(f"Rejected move of organization {org.id} under itself")
            raise StructuralConflict(f"Organization {org.code} cannot be its own parent")

        if org.id in self._ancestor_ids(new_parent):
            metrics_collector.record_structural_conflict()
            logger.warning(f"Rejected move of organization {org.id} under descendant {new_parent.id}")
            raise StructuralConflict(
                f"Organization {new_parent.code} is a descendant of {org.code}; "
                f"moving {org.code} under it would create a cycle"
            )

    def _resolve_parent(self, org: Optional[Organization], parent_id: Optional[UUID]) -> Optional[Organization]:
        """Look up a requested parent and run the cycle check for existing nodes"""
        if parent_id is None:
            return None

        parent = self._find(parent_id, "parent_id")
        if parent is None:
            raise ValidationError.for_field(
                "parent_id", "The selected parent organization does not exist."
            )
        if org is not None and org.id is not None:
            self._assert_no_cycle(org, parent)
        return parent

    def _load_relations(self, org: Organization) -> Organization:
        for relation in ("parent", "manager", "creator"):
            getattr(org, relation)
        return org

    def _dispatch(self, event: Any) -> None:
        self.events.dispatch(event)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, organization_id: Any) -> Organization:
        """
        Fetch a live organization of the active tenant.

        Raises:
            NotFound: If it does not exist, is soft-deleted or belongs to another tenant
        """
        org = self._find(organization_id)
        if org is None:
            raise NotFound(f"Organization {organization_id} not found")
        return org

    def list_organizations(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Tuple[List[Organization], int]:
        """
        Paginated listing with optional type, status, parent_id and search filters.

        Returns:
            Tuple of (organizations on the page, total matching)
        """
        filters = filters or {}
        per_page = min(per_page or self.config.pagination_per_page, self.config.pagination_max_per_page)
        page = max(page, 1)

        query = self._apply_filters(self._query(), filters)
        if filters.get("search"):
            pattern = _like_pattern(filters["search"])
            query = query.filter(
                or_(
                    Organization.name.ilike(pattern, escape="\\"),
                    Organization.code.ilike(pattern, escape="\\"),
                )
            )

        total = query.count()
        items = (
            query.options(joinedload(Organization.parent), joinedload(Organization.manager))
            .order_by(Organization.name)
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def _apply_filters(self, query, filters: Dict[str, Any]):
        if filters.get("type"):
            query = query.filter(Organization.type == filters["type"])
        if filters.get("status"):
            query = query.filter(Organization.status == filters["status"])
        if filters.get("parent_id"):
            query = query.filter(
                Organization.parent_id == _coerce_uuid(filters["parent_id"], "parent_id")
            )
        return query

    def get_tree(self, parent_id: Any = None) -> List[Organization]:
        """
        Organizations directly under parent_id (roots when None), ordered by name.

        Each returned node carries up to config.tree_depth levels of live
        descendants in its ``children`` collection, every level tenant-scoped
        and ordered by name.
        """
        query = self._query()
        if parent_id is None:
            query = query.filter(Organization.parent_id.is_(None))
        else:
            query = query.filter(Organization.parent_id == _coerce_uuid(parent_id, "parent_id"))

        nodes = query.order_by(Organization.name).all()

        level = nodes
        for _ in range(self.config.tree_depth):
            if not level:
                break
            children = (
                self._query()
                .filter(Organization.parent_id.in_([node.id for node in level]))
                .order_by(Organization.name)
                .all()
            )
            by_parent = defaultdict(list)
            for child in children:
                by_parent[child.parent_id].append(child)
            for node in level:
                set_committed_value(node, "children", by_parent.get(node.id, []))
            level = children

        return nodes

    def get_statistics(self) -> Dict[str, Any]:
        """Aggregate counts over live organizations of the active tenant"""
        def grouped(column) -> Dict[str, int]:
            query = self.db.query(column, func.count(Organization.id)).filter(
                Organization.deleted_at.is_(None)
            )
            query = self.tenant.apply(query, Organization.tenant_id)
            return {key: count for key, count in query.group_by(column).all()}

        base = self._query()
        return {
            "total": base.count(),
            "by_type": grouped(Organization.type),
            "by_status": grouped(Organization.status),
            "root_organizations": base.filter(Organization.parent_id.is_(None)).count(),
            "organizations_with_managers": base.filter(Organization.manager_id.isnot(None)).count(),
        }

    def search(self, query: str, filters: Optional[Dict[str, Any]] = None) -> List[Organization]:
        """
        Case-insensitive substring match on name or code, narrowed by optional
        type, status and parent_id filters, ordered by name.
        """
        pattern = _like_pattern(query or "")
        results = self._apply_filters(self._query(), filters or {}).filter(
            or_(
                Organization.name.ilike(pattern, escape="\\"),
                Organization.code.ilike(pattern, escape="\\"),
            )
        )
        return (
            results.options(joinedload(Organization.parent), joinedload(Organization.manager))
            .order_by(Organization.name)
            .all()
        )

    def get_organization_path(self, org: Organization) -> List[Dict[str, Any]]:
        """Breadcrumb from the root down to org as {id, name, type} entries"""
        chain = list(reversed(org.ancestors())) + [org]
        return [{"id": node.id, "name": node.name, "type": node.type} for node in chain]

    def get_user_organizations(self, user_id: Any, role: Optional[str] = None) -> List[Organization]:
        """Live organizations of the active tenant the user is assigned to"""
        user_id = _coerce_uuid(user_id, "user_id")
        query = self._query().join(
            OrganizationUser, OrganizationUser.organization_id == Organization.id
        ).filter(OrganizationUser.user_id == user_id)
        if role:
            query = query.filter(OrganizationUser.role == role)
        return query.distinct().order_by(Organization.name).all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> Organization:
        """
        Create an organization in the active tenant.

        When no manager is given and an actor is authenticated, the actor
        becomes the primary manager within the same transaction.

        Raises:
            ValidationError: Invalid input or no tenant while tenancy is enabled
            DuplicateCode: Code already taken within the tenant partition
        """
        with MetricsTimer("create"):
            payload = self._validate(data, partial=False)
            tenant_id = self.tenant.require()

            with self._transaction():
                parent = self._resolve_parent(None, payload.pop("parent_id", None))
                if payload.get("manager_id") is not None and self._find_user(payload["manager_id"], "manager_id") is None:
                    raise ValidationError.for_field("manager_id", "The selected manager does not exist.")
                self._ensure_unique_code(payload["code"], tenant_id)

                org = Organization(
                    **payload,
                    tenant_id=tenant_id,
                    created_by=self._actor_id,
                    updated_by=self._actor_id,
                )
                org.parent = parent
                self.db.add(org)
                self._flush(payload["code"])

                if org.manager_id is None and self.actor is not None:
                    org.manager_id = self.actor.id
                    self._flush()

            self._load_relations(org)

        logger.info(f"Created organization {org.id} ({org.code}) in tenant {tenant_id}")
        self._dispatch(OrganizationCreated(organization=org))
        return org

    def update(self, org: Organization, data: Dict[str, Any]) -> Organization:
        """
        Apply field changes to an organization.

        A changed parent_id is subject to the same cycle check as move().
        A manager change to a non-null user emits ManagerAssigned after commit.

        Raises:
            ValidationError, DuplicateCode, StructuralConflict, NotFound
        """
        with MetricsTimer("update"):
            payload = self._validate(data, partial=True)
            self.tenant.require()
            self._ensure_visible(org)

            old_manager_id = org.manager_id
            changes = {}

            with self._transaction():
                if "parent_id" in payload:
                    parent_id = payload.pop("parent_id")
                    if parent_id != org.parent_id:
                        org.parent = self._resolve_parent(org, parent_id)
                        changes["parent_id"] = parent_id

                if "code" in payload and payload["code"] != org.code:
                    self._ensure_unique_code(payload["code"], org.tenant_id, exclude_id=org.id)

                new_manager = None
                if payload.get("manager_id") is not None:
                    new_manager = self._find_user(payload["manager_id"], "manager_id")
                    if new_manager is None:
                        raise ValidationError.for_field("manager_id", "The selected manager does not exist.")

                for field, value in payload.items():
                    if getattr(org, field) != value:
                        changes[field] = value
                        setattr(org, field, value)

                org.updated_by = self._actor_id
                self._flush(payload.get("code"))

            self.db.refresh(org)
            self._load_relations(org)

        logger.info(f"Updated organization {org.id}: {sorted(changes)}")
        self._dispatch(OrganizationUpdated(organization=org, changes=changes))
        if new_manager is not None and old_manager_id != new_manager.id:
            self._dispatch(ManagerAssigned(organization=org, user=new_manager, role="primary"))
        return org

    def move(self, org: Organization, new_parent_id: Any = None) -> Organization:
        """
        Reparent org under new_parent_id (or make it a root when None).

        Raises:
            StructuralConflict: If the new parent is org or one of its descendants;
                nothing is written in that case
            NotFound: If org or the new parent is not visible in the active tenant
        """
        with MetricsTimer("move"):
            self.tenant.require()
            self._ensure_visible(org)

            with self._transaction():
                new_parent = None
                if new_parent_id is not None:
                    new_parent = self._find(new_parent_id, "parent_id")
                    if new_parent is None:
                        raise NotFound(f"Organization {new_parent_id} not found")
                    self._assert_no_cycle(org, new_parent)

                org.parent = new_parent
                org.updated_by = self._actor_id
                self._flush()

        logger.info(
            f"Moved organization {org.id} under {new_parent.id if new_parent else 'root'}"
        )
        self._dispatch(OrganizationUpdated(organization=org, changes={"parent_id": org.parent_id}))
        return org

    def delete(self, org: Organization, move_children_to_parent: bool = True) -> bool:
        """
        Soft-delete an organization.

        With move_children_to_parent (the default) its direct children are
        re-pointed to its own parent before it is deleted, in the same
        transaction. Otherwise the soft delete cascades to the whole subtree.
        """
        with MetricsTimer("delete"):
            self.tenant.require()
            self._ensure_visible(org)

            with self._transaction():
                now = datetime.utcnow()
                if move_children_to_parent:
                    children = self.tenant.apply(
                        self.db.query(Organization).filter(Organization.parent_id == org.id),
                        Organization.tenant_id,
                    )
                    moved = children.update(
                        {Organization.parent_id: org.parent_id}, synchronize_session="fetch"
                    )
                    if moved:
                        logger.info(f"Reparented {moved} children of {org.id} to {org.parent_id}")
                else:
                    for descendant in org.descendants():
                        descendant.deleted_at = now
                        descendant.updated_by = self._actor_id

                org.deleted_at = now
                org.updated_by = self._actor_id
                self._flush()

        logger.info(f"Deleted organization {org.id} ({org.code})")
        self._dispatch(OrganizationDeleted(organization=org))
        return True

    def _assign(self, org: Organization, user: Any, role: str) -> OrganizationUser:
        assignment = self.db.get(OrganizationUser, (org.id, user.id, role))
        if assignment is None:
            assignment = OrganizationUser(organization_id=org.id, user_id=user.id, role=role)
            self.db.add(assignment)
        return assignment

    def _validate_role(self, role: str) -> None:
        if role not in self.config.assignable_roles:
            raise ValidationError.for_field("role", "The selected role is invalid.")

    def assign_user(self, org: Organization, user_id: Any, role: Optional[str] = None) -> bool:
        """
        Give a user a role in an organization, keeping their other roles.

        Returns:
            False if the user does not exist, True otherwise
        """
        with MetricsTimer("assign_user"):
            role = role or self.config.default_assignment_role
            self._validate_role(role)
            self.tenant.require()
            self._ensure_visible(org)

            user = self._find_user(user_id)
            if user is None:
                logger.warning(f"Cannot assign missing user {user_id} to organization {org.id}")
                return False

            with self._transaction():
                self._assign(org, user, role)
                self._flush()

        logger.info(f"Assigned user {user.id} to organization {org.id} as {role}")
        self._dispatch(ManagerAssigned(organization=org, user=user, role=role))
        return True

    def bulk_assign_users(self, org: Organization, user_roles: Dict[Any, str]) -> Dict[Any, bool]:
        """
        Assign several users in one transaction.

        Args:
            org: Target organization
            user_roles: Mapping of user id to role

        Returns:
            Mapping of user id to whether the user existed and was assigned
        """
        with MetricsTimer("bulk_assign_users"):
            for role in user_roles.values():
                self._validate_role(role)
            self.tenant.require()
            self._ensure_visible(org)

            results = {}
            assigned = []
            with self._transaction():
                for user_id, role in user_roles.items():
                    user = self._find_user(user_id)
                    if user is None:
                        results[user_id] = False
                        continue
                    self._assign(org, user, role)
                    assigned.append((user, role))
                    results[user_id] = True
                self._flush()

        logger.info(f"Bulk assigned {len(assigned)} users to organization {org.id}")
        for user, role in assigned:
            self._dispatch(ManagerAssigned(organization=org, user=user, role=role))
        return results

    def remove_user(self, org: Organization, user_id: Any, role: Optional[str] = None) -> bool:
        """
        Remove one role (or every role when role is None) of a user.

        Returns:
            Whether any assignment was removed
        """
        with MetricsTimer("remove_user"):
            self.tenant.require()
            self._ensure_visible(org)

            user = self._find_user(user_id)
            if user is None:
                return False

            with self._transaction():
                query = self.db.query(OrganizationUser).filter(
                    OrganizationUser.organization_id == org.id,
                    OrganizationUser.user_id == user.id,
                )
                if role:
                    query = query.filter(OrganizationUser.role == role)
                removed = query.delete(synchronize_session="fetch")

        if not removed:
            return False

        logger.info(f"Removed {removed} role(s) of user {user.id} from organization {org.id}")
        self._dispatch(ManagerRemoved(organization=org, user=user, role=role or "all"))
        return True
