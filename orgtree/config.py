"""Application configuration using Pydantic Settings"""

from typing import Dict, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Security
    secret_key: str
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Logging
    log_level: str = "INFO"

    # Organization enumerations (value -> label)
    organization_types: Dict[str, str] = {
        "company": "Company",
        "branch": "Branch",
        "department": "Department",
        "division": "Division",
        "sub_division": "Sub Division",
    }
    organization_statuses: Dict[str, str] = {
        "active": "Active",
        "inactive": "Inactive",
    }
    manager_roles: Dict[str, str] = {
        "manager": "Manager",
        "supervisor": "Supervisor",
        "coordinator": "Coordinator",
        "assistant": "Assistant",
    }
    default_assignment_role: str = "member"

    # Multi-tenancy
    tenancy_enabled: bool = False
    tenant_column: str = "tenant_id"
    tenant_header: str = "X-Tenant-ID"
    tenant_param: str = "tenant_id"
    tenant_session_key: str = "tenant_id"
    session_cookie: str = "orgtree_session"

    # Pagination
    pagination_per_page: int = 15
    pagination_max_per_page: int = 100

    # Permission strings checked by the access policy, per action
    permissions: Dict[str, str] = {
        "create": "organization.create",
        "view": "organization.view",
        "update": "organization.update",
        "delete": "organization.delete",
        "assign_managers": "organization.assign_managers",
    }

    # Hierarchy
    max_hierarchy_depth: int = 100
    tree_depth: int = 4

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def assignable_roles(self) -> list[str]:
        """Roles accepted by user assignment: manager roles plus the default role"""
        roles = list(self.manager_roles.keys())
        if self.default_assignment_role not in roles:
            roles.append(self.default_assignment_role)
        return roles


# Global settings instance
settings = Settings()
