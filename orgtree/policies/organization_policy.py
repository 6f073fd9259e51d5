"""Access policy for organization actions"""

import logging
from typing import Any, Optional

from orgtree.config import settings
from orgtree.exceptions import AuthorizationDenied

logger = logging.getLogger(__name__)


def _can(actor: Any, action: str) -> bool:
    """Coarse permission grant for an action, per settings.permissions"""
    permission = settings.permissions.get(action)
    return permission is not None and actor.can(permission)


def view_any(actor: Any) -> bool:
    return _can(actor, "view")


def view(actor: Any, organization: Any) -> bool:
    return (
        _can(actor, "view")
        or actor.belongs_to_organization(organization.id)
        or actor.is_primary_manager_of(organization.id)
    )


def create(actor: Any) -> bool:
    return _can(actor, "create")


def update(actor: Any, organization: Any) -> bool:
    return (
        _can(actor, "update")
        or actor.is_primary_manager_of(organization.id)
        or actor.has_role_in_organization(organization.id, "manager")
    )


def delete(actor: Any, organization: Any) -> bool:
    return _can(actor, "delete") or actor.is_primary_manager_of(organization.id)


def assign_managers(actor: Any, organization: Any) -> bool:
    return (
        _can(actor, "assign_managers")
        or actor.is_primary_manager_of(organization.id)
        or actor.has_role_in_organization(organization.id, "manager")
    )


def remove_managers(actor: Any, organization: Any) -> bool:
    return _can(actor, "assign_managers") or actor.is_primary_manager_of(organization.id)


def view_members(actor: Any, organization: Any) -> bool:
    return (
        actor.belongs_to_organization(organization.id)
        or actor.is_primary_manager_of(organization.id)
        or actor.has_role_in_organization(organization.id, "manager")
    )


def manage_hierarchy(actor: Any, organization: Any) -> bool:
    return _can(actor, "update") or actor.is_primary_manager_of(organization.id)


# Actions that take no target organization
_GLOBAL_ACTIONS = {
    "view_any": view_any,
    "create": create,
}

_ORGANIZATION_ACTIONS = {
    "view": view,
    "update": update,
    "delete": delete,
    "assign_managers": assign_managers,
    "remove_managers": remove_managers,
    "view_members": view_members,
    "manage_hierarchy": manage_hierarchy,
}


def authorize(action: str, actor: Any, organization: Optional[Any] = None) -> None:
    """
    Evaluate a policy decision and raise when it denies.

    Raises:
        AuthorizationDenied: If the actor is missing or the policy returns False
        KeyError: If the action is unknown
    """
    if action in _GLOBAL_ACTIONS:
        allowed = actor is not None and _GLOBAL_ACTIONS[action](actor)
    else:
        decide = _ORGANIZATION_ACTIONS[action]
        allowed = actor is not None and organization is not None and decide(actor, organization)

    if not allowed:
        logger.info(
            f"Denied {action} for actor {getattr(actor, 'id', None)} "
            f"on organization {getattr(organization, 'id', None)}"
        )
        raise AuthorizationDenied(f"Not allowed to {action.replace('_', ' ')} this organization")
