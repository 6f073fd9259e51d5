"""Organization hierarchy endpoints"""

from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import inspect

from orgtree.api.dependencies import get_current_user, get_hierarchy_service
from orgtree.api.errors import ProblemDetail, not_found_error, validation_error
from orgtree.config import settings
from orgtree.models import Organization, User
from orgtree.policies import organization_policy as policy
from orgtree.schemas.organization import (
    AssignUserRequest,
    MessageResponse,
    OrganizationCreate,
    OrganizationDetailResponse,
    OrganizationListResponse,
    OrganizationMove,
    OrganizationPathEntry,
    OrganizationResponse,
    OrganizationStatistics,
    OrganizationTreeNode,
    OrganizationUpdate,
)
from orgtree.services.hierarchy_service import HierarchyService

router = APIRouter(
    prefix="/api/v1/organizations",
    tags=["Organizations"],
    responses={code: {"model": ProblemDetail} for code in (400, 401, 403, 404, 409)},
)


def _detail(org: Organization) -> OrganizationDetailResponse:
    base = OrganizationResponse.model_validate(org).model_dump()
    return OrganizationDetailResponse(
        **base,
        type_label=settings.organization_types.get(org.type, org.type),
        status_label=settings.organization_statuses.get(org.status, org.status),
        depth=org.depth(),
        full_path=org.full_path(),
        is_root=org.is_root(),
        is_leaf=org.is_leaf(),
    )


def _tree_node(org: Organization) -> dict:
    """Serialize a node with only the children get_tree loaded"""
    node = OrganizationResponse.model_validate(org).model_dump()
    loaded = inspect(org).dict.get("children") or []
    node["children"] = [_tree_node(child) for child in loaded]
    return node


@router.get("", response_model=OrganizationListResponse, status_code=status.HTTP_200_OK)
def list_organizations(
    type: Optional[str] = Query(None, description="Filter by organization type"),
    org_status: Optional[str] = Query(None, alias="status", description="Filter by status"),
    parent_id: Optional[UUID] = Query(None, description="Filter by parent organization"),
    search: Optional[str] = Query(None, description="Substring of name or code"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(settings.pagination_per_page, ge=1, description="Items per page"),
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    """
    List organizations of the active tenant

    Returns a page of organizations ordered by name. per_page is capped at
    the configured maximum.
    """
    policy.authorize("view_any", current_user)

    filters = {"type": type, "status": org_status, "parent_id": parent_id, "search": search}
    per_page = min(per_page, settings.pagination_max_per_page)
    organizations, total = service.list_organizations(filters, page=page, per_page=per_page)

    return OrganizationListResponse(
        organizations=[OrganizationResponse.model_validate(o) for o in organizations],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("", response_model=OrganizationDetailResponse, status_code=status.HTTP_201_CREATED)
def create_organization(
    body: OrganizationCreate,
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    """Create an organization; the caller becomes primary manager when none is given"""
    policy.authorize("create", current_user)

    org = service.create(body.model_dump(exclude_unset=True))
    return _detail(org)


@router.get("/tree", response_model=List[OrganizationTreeNode], status_code=status.HTTP_200_OK)
def get_tree(
    parent_id: Optional[UUID] = Query(None, description="Subtree root, omitted for top-level organizations"),
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    """Nested organization tree, a bounded number of levels deep"""
    policy.authorize("view_any", current_user)

    return [_tree_node(org) for org in service.get_tree(parent_id)]


@router.get("/search", response_model=List[OrganizationResponse], status_code=status.HTTP_200_OK)
def search_organizations(
    q: str = Query(..., min_length=2, description="Substring of name or code"),
    type: Optional[str] = Query(None),
    org_status: Optional[str] = Query(None, alias="status"),
    parent_id: Optional[UUID] = Query(None),
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    policy.authorize("view_any", current_user)

    filters = {"type": type, "status": org_status, "parent_id": parent_id}
    return [OrganizationResponse.model_validate(o) for o in service.search(q, filters)]


@router.get("/statistics", response_model=OrganizationStatistics, status_code=status.HTTP_200_OK)
def get_statistics(
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    policy.authorize("view_any", current_user)

    return OrganizationStatistics(**service.get_statistics())


@router.get("/{organization_id}", response_model=OrganizationDetailResponse, status_code=status.HTTP_200_OK)
def get_organization(
    organization_id: UUID,
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    org = service.get(organization_id)
    policy.authorize("view", current_user, org)

    return _detail(org)


@router.get("/{organization_id}/path", response_model=List[OrganizationPathEntry], status_code=status.HTTP_200_OK)
def get_organization_path(
    organization_id: UUID,
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    """Breadcrumb from the root down to the organization"""
    org = service.get(organization_id)
    policy.authorize("view", current_user, org)

    return service.get_organization_path(org)


@router.patch("/{organization_id}", response_model=OrganizationDetailResponse, status_code=status.HTTP_200_OK)
def update_organization(
    organization_id: UUID,
    body: OrganizationUpdate,
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    """
    Update organization fields

    Only fields present in the body are changed. A changed parent_id also
    requires the hierarchy permission and is checked for cycles.
    """
    org = service.get(organization_id)
    policy.authorize("update", current_user, org)

    data = body.model_dump(exclude_unset=True)
    if "parent_id" in data:
        policy.authorize("manage_hierarchy", current_user, org)

    return _detail(service.update(org, data))


@router.post("/{organization_id}/move", response_model=OrganizationDetailResponse, status_code=status.HTTP_200_OK)
def move_organization(
    organization_id: UUID,
    body: OrganizationMove,
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    """Reparent an organization; a null parent_id makes it a root"""
    org = service.get(organization_id)
    policy.authorize("manage_hierarchy", current_user, org)

    return _detail(service.move(org, body.parent_id))


@router.delete("/{organization_id}", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def delete_organization(
    organization_id: UUID,
    move_children_to_parent: bool = Query(True, description="Reparent children instead of deleting them"),
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    org = service.get(organization_id)
    policy.authorize("delete", current_user, org)

    service.delete(org, move_children_to_parent=move_children_to_parent)
    return MessageResponse(message="Organization deleted successfully.")


@router.post("/{organization_id}/users", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def assign_user(
    organization_id: UUID,
    body: AssignUserRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    """Give a user a role in the organization, keeping their other roles"""
    org = service.get(organization_id)
    policy.authorize("assign_managers", current_user, org)

    if not service.assign_user(org, body.user_id, body.role):
        return validation_error(
            "Failed to assign user.",
            errors=[{"field": "user_id", "message": "The selected user does not exist."}],
            instance=request.url.path,
        )
    return MessageResponse(message="User assigned successfully.")


@router.delete(
    "/{organization_id}/users/{user_id}", response_model=MessageResponse, status_code=status.HTTP_200_OK
)
def remove_user(
    organization_id: UUID,
    user_id: UUID,
    request: Request,
    role: Optional[str] = Query(None, description="Remove only this role; all roles when omitted"),
    current_user: User = Depends(get_current_user),
    service: HierarchyService = Depends(get_hierarchy_service),
):
    org = service.get(organization_id)
    policy.authorize("remove_managers", current_user, org)

    if not service.remove_user(org, user_id, role):
        return not_found_error(
            f"User {user_id} holds no matching role in organization {organization_id}",
            instance=request.url.path,
        )
    return MessageResponse(message="User removed successfully.")
