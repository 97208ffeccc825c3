"""
FastAPI dependencies for authentication and authorization.

Provides:
- get_current_principal: The Principal the middleware attached, or 401
- require_admin / require_admin_or_support: Role gates (403)
- ensure_can_access: Owner-or-staff check for resource-scoped routes
- get_audit_recorder / get_client_meta: Audit plumbing
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import AuditRecorder, ClientMeta, client_meta_from_request
from app.auth.guards import can_access_resource, is_admin, is_admin_or_support
from app.auth.middleware import Authenticator
from app.auth.principal import Principal
from app.core.database import get_db
from app.core.exceptions import AuthorizationError
from app.services.accounts import AccountService


def get_optional_principal(request: Request) -> Optional[Principal]:
    """
    The Principal resolved by AuthenticationMiddleware, or None.
    Useful for endpoints that work differently for authenticated vs anonymous users.
    """
    return getattr(request.state, "principal", None)


def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    """
    Require an authenticated caller.

    Raises:
        HTTPException 401: If the request carried no valid bearer token
    """
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    Usage:
        @router.patch("/users/{user_id}/disable")
        async def disable(admin: Principal = Depends(require_admin)):
            ...

    Raises:
        AuthorizationError: Caller is not an administrator (403)
    """
    if not is_admin(principal):
        raise AuthorizationError("Administrator role required")
    return principal


def require_admin_or_support(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not is_admin_or_support(principal):
        raise AuthorizationError("Administrator or support role required")
    return principal


def ensure_can_access(principal: Principal, resource_owner_id: int) -> None:
    """Raise AuthorizationError unless the principal owns the resource or is staff."""
    if not can_access_resource(principal, resource_owner_id):
        raise AuthorizationError("Not authorized to access this resource")


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_audit_recorder(request: Request) -> AuditRecorder:
    return request.app.state.audit_recorder


def get_client_meta(request: Request) -> ClientMeta:
    return client_meta_from_request(request)


def get_account_service(db: AsyncSession = Depends(get_db)) -> AccountService:
    return AccountService(db)
