"""RFC 7807 Problem Details error response formatting"""

import logging
from typing import Optional, Dict, Any, List
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from orgtree.exceptions import (
    AuthorizationDenied,
    NotFound,
    OrganizationError,
    StructuralConflict,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_TYPE_BASE = "https://api.orgtree.local/errors"


class ValidationErrorDetail(BaseModel):
    """Validation error detail for a specific field"""
    field: str
    message: str


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs"""
    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference identifying the specific occurrence")
    errors: Optional[List[ValidationErrorDetail]] = Field(None, description="Validation errors")


def problem_detail(
    status_code: int,
    title: str,
    detail: str,
    error_type: Optional[str] = None,
    instance: Optional[str] = None,
    errors: Optional[List[Dict[str, str]]] = None
) -> Dict[str, Any]:
    """
    Build an RFC 7807 problem document

    Args:
        status_code: HTTP status code
        title: Short error title
        detail: Detailed error message
        error_type: Error type slug (defaults to a generic type based on status code)
        instance: Request path or identifier
        errors: List of validation errors with field and message

    Returns:
        Problem details as a plain dict
    """
    error_type_map = {
        400: "validation_error",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        500: "internal_server_error",
    }

    if not error_type:
        error_type = error_type_map.get(status_code, "error")

    problem = {
        "type": f"{ERROR_TYPE_BASE}/{error_type}",
        "title": title,
        "status": status_code,
        "detail": detail
    }

    if instance:
        problem["instance"] = instance

    if errors:
        problem["errors"] = errors

    return problem


def create_error_response(
    status_code: int,
    title: str,
    detail: str,
    error_type: Optional[str] = None,
    instance: Optional[str] = None,
    errors: Optional[List[Dict[str, str]]] = None
) -> JSONResponse:
    """Create an RFC 7807 compliant error response"""
    return JSONResponse(
        status_code=status_code,
        content=problem_detail(status_code, title, detail, error_type, instance, errors)
    )


def forbidden_error(detail: str = "Insufficient permissions", instance: Optional[str] = None) -> JSONResponse:
    """Create a 403 Forbidden error response"""
    return create_error_response(
        status_code=status.HTTP_403_FORBIDDEN,
        title="Forbidden",
        detail=detail,
        instance=instance
    )


def not_found_error(detail: str = "Resource not found", instance: Optional[str] = None) -> JSONResponse:
    """Create a 404 Not Found error response"""
    return create_error_response(
        status_code=status.HTTP_404_NOT_FOUND,
        title="Not Found",
        detail=detail,
        instance=instance
    )


def validation_error(
    detail: str = "Validation failed",
    errors: Optional[List[Dict[str, str]]] = None,
    instance: Optional[str] = None
) -> JSONResponse:
    """Create a 400 Validation Error response"""
    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        title="Validation Error",
        detail=detail,
        errors=errors,
        instance=instance
    )


def conflict_error(
    detail: str = "Resource conflict",
    instance: Optional[str] = None,
    title: str = "Conflict"
) -> JSONResponse:
    """Create a 409 Conflict error response"""
    return create_error_response(
        status_code=status.HTTP_409_CONFLICT,
        title=title,
        detail=detail,
        error_type="structural_conflict",
        instance=instance
    )


def organization_error_response(exc: OrganizationError, instance: Optional[str] = None) -> JSONResponse:
    """Map a hierarchy error onto its problem-details response"""
    if isinstance(exc, ValidationError):
        return validation_error(exc.detail, errors=exc.errors or None, instance=instance)
    if isinstance(exc, NotFound):
        return not_found_error(exc.detail, instance=instance)
    if isinstance(exc, StructuralConflict):
        return conflict_error(exc.detail, instance=instance, title=exc.title)
    if isinstance(exc, AuthorizationDenied):
        return forbidden_error(exc.detail, instance=instance)

    logger.error(f"Unmapped organization error {type(exc).__name__}: {exc.detail}")
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        title=exc.title,
        detail=exc.detail,
        instance=instance
    )


def _field_name(location) -> str:
    # Drop the "body"/"query"/"path" prefix FastAPI puts first
    parts = [str(part) for part in location[1:]] or [str(part) for part in location]
    return ".".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    """Install problem-details handlers for hierarchy and request validation errors"""

    @app.exception_handler(OrganizationError)
    async def handle_organization_error(request: Request, exc: OrganizationError):
        return organization_error_response(exc, instance=request.url.path)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": _field_name(error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        return validation_error("Request validation failed", errors=errors, instance=request.url.path)
