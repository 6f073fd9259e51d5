"""Typed failures raised by the hierarchy service and access policy"""

from typing import Dict, List, Optional


class OrganizationError(Exception):
    """Base class for organization hierarchy errors"""

    title = "Organization Error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(OrganizationError, ValueError):
    """
    Malformed, missing or out-of-enumeration input.

    Carries field-level detail as a list of {"field", "message"} entries.
    """

    title = "Validation Error"

    def __init__(self, detail: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(detail)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class DuplicateCode(ValidationError):
    """Organization code already used within the tenant partition"""

    def __init__(self, code: str):
        message = f"Organization code '{code}' is already taken"
        super().__init__(message, errors=[{"field": "code", "message": message}])
        self.code = code


class StructuralConflict(OrganizationError):
    """A parent-pointer write would introduce a cycle"""

    title = "Structural Conflict"


class NotFound(OrganizationError):
    """Referenced organization or user does not exist"""

    title = "Not Found"


class AuthorizationDenied(OrganizationError):
    """Access policy rejected the action"""

    title = "Forbidden"
