"""Organization schemas"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from uuid import UUID


class OrganizationBase(BaseModel):
    """Base organization schema"""
    type: str = Field(..., min_length=1, max_length=50, description="Organization type")
    name: str = Field(..., min_length=1, max_length=255, description="Organization name")
    code: str = Field(..., min_length=1, max_length=50, description="Code, unique within the tenant")
    description: Optional[str] = Field(None, max_length=1000, description="Organization description")
    address: Optional[str] = Field(None, description="Postal address")
    phone: Optional[str] = Field(None, max_length=50, description="Contact phone")
    email: Optional[str] = Field(None, max_length=255, description="Contact email")
    website: Optional[str] = Field(None, max_length=255, description="Website URL")
    status: str = Field(default="active", description="Organization status")


class OrganizationCreate(OrganizationBase):
    """Organization creation schema"""
    parent_id: Optional[UUID] = Field(None, description="Parent organization UUID, omitted for a root")
    manager_id: Optional[UUID] = Field(None, description="Primary manager user UUID")
    meta: Optional[Dict[str, Any]] = Field(None, description="Free-form key-value metadata")


class OrganizationUpdate(BaseModel):
    """Organization update schema - all fields optional"""
    parent_id: Optional[UUID] = Field(None, description="New parent organization UUID")
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    website: Optional[str] = Field(None, max_length=255)
    status: Optional[str] = None
    manager_id: Optional[UUID] = None
    meta: Optional[Dict[str, Any]] = None


class OrganizationMove(BaseModel):
    """Move request; a null parent makes the organization a root"""
    parent_id: Optional[UUID] = Field(None, description="New parent organization UUID")


class AssignUserRequest(BaseModel):
    """Assign a user a role in an organization"""
    user_id: UUID = Field(..., description="User UUID")
    role: Optional[str] = Field(None, description="Role to grant, defaults to member")


class OrganizationResponse(OrganizationBase):
    """Organization response schema"""
    id: UUID
    tenant_id: Optional[str] = None
    parent_id: Optional[UUID] = None
    manager_id: Optional[UUID] = None
    meta: Optional[Dict[str, Any]] = None
    created_by: Optional[UUID] = None
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrganizationDetailResponse(OrganizationResponse):
    """Organization with its position in the hierarchy and display labels"""
    type_label: str
    status_label: str
    depth: int = Field(..., description="Number of ancestors")
    full_path: str = Field(..., description="Names from the root down, joined by ' > '")
    is_root: bool
    is_leaf: bool


class OrganizationTreeNode(OrganizationResponse):
    """Organization with its nested live children"""
    children: List["OrganizationTreeNode"] = Field(default_factory=list)


class OrganizationListResponse(BaseModel):
    """Paginated list of organizations"""
    organizations: List[OrganizationResponse]
    total: int = Field(..., description="Total number of matching organizations")
    page: int = Field(default=1, description="Current page number")
    per_page: int = Field(default=15, description="Number of items per page")


class OrganizationPathEntry(BaseModel):
    """One breadcrumb step"""
    id: UUID
    name: str
    type: str


class OrganizationStatistics(BaseModel):
    """Aggregate counts over live organizations of the active tenant"""
    total: int
    by_type: Dict[str, int]
    by_status: Dict[str, int]
    root_organizations: int
    organizations_with_managers: int


class MessageResponse(BaseModel):
    message: str
