"""Pydantic request and response schemas"""

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

__all__ = [
    "AssignUserRequest",
    "MessageResponse",
    "OrganizationCreate",
    "OrganizationDetailResponse",
    "OrganizationListResponse",
    "OrganizationMove",
    "OrganizationPathEntry",
    "OrganizationResponse",
    "OrganizationStatistics",
    "OrganizationTreeNode",
    "OrganizationUpdate",
]
