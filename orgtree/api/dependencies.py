"""API dependencies for authentication, tenant resolution and service wiring"""

from typing import Optional
from fastapi import Depends, HTTPException, status, Header, Request
from sqlalchemy.orm import Session
from uuid import UUID

from orgtree.api.errors import problem_detail
from orgtree.database import get_db
from orgtree.events import event_dispatcher
from orgtree.models import User
from orgtree.services.auth_service import AuthService
from orgtree.services.hierarchy_service import HierarchyService
from orgtree.tenancy import TenantContext


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=problem_detail(status.HTTP_401_UNAUTHORIZED, "Unauthorized", detail),
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    Args:
        authorization: Authorization header with Bearer token
        db: Database session

    Returns:
        User object

    Raises:
        HTTPException: If token is invalid or user not found
    """
    if not authorization:
        raise _unauthorized("Authorization header missing")

    # Extract token from "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _unauthorized("Invalid authorization header format")

    payload = AuthService.validate_token(parts[1], token_type="access")
    if not payload:
        raise _unauthorized("Invalid or expired token")

    user_id_str: Optional[str] = payload.get("sub")
    if not user_id_str:
        raise _unauthorized("Invalid token payload")

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise _unauthorized("Invalid user ID in token")

    user = db.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")

    return user


def get_tenant_context(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TenantContext:
    """
    Fresh tenant context for this request, fed by the actor and the request itself.

    A resolved tenant is bound and written to the session, so later requests
    from the same client resolve it from the session first.
    """
    context = TenantContext(
        session=request.session,
        actor=current_user,
        headers=request.headers,
        params=request.query_params,
        host=request.url.hostname,
        db=db,
    )

    tenant_id = context.resolve()
    if tenant_id is not None:
        context.set(tenant_id)
    return context


def get_hierarchy_service(
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    current_user: User = Depends(get_current_user),
) -> HierarchyService:
    return HierarchyService(db, tenant, actor=current_user, events=event_dispatcher)
