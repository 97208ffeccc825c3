"""
User profile endpoints.

Readable and editable by the profile's owner, or by ADMIN/SUPPORT staff.
"""

from fastapi import APIRouter, Depends, Query

from app.auth.audit import AuditRecorder, ClientMeta
from app.auth.dependencies import (
    ensure_can_access,
    get_account_service,
    get_audit_recorder,
    get_client_meta,
    get_current_principal,
    require_admin_or_support,
)
from app.auth.principal import Principal
from app.models.audit import AuditAction
from app.schemas.user import UserResponse, UserUpdate, user_to_response
from app.services.accounts import AccountService, snapshot

router = APIRouter()


@router.get("/", response_model=list[UserResponse])
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    staff: Principal = Depends(require_admin_or_support),
    accounts: AccountService = Depends(get_account_service),
):
    """List accounts. ADMIN or SUPPORT only."""
    return [user_to_response(u) for u in await accounts.list_users(skip=skip, limit=limit)]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    ensure_can_access(principal, user_id)
    user = await accounts.get_by_id(user_id)
    return user_to_response(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    principal: Principal = Depends(get_current_principal),
    client: ClientMeta = Depends(get_client_meta),
    accounts: AccountService = Depends(get_account_service),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """Update profile names. Audited with before/after state."""
    ensure_can_access(principal, user_id)

    user = await accounts.get_by_id(user_id)
    before = snapshot(user)

    await accounts.update_profile(user, first_name=user_data.first_name, last_name=user_data.last_name)

    audit.record(
        principal,
        "users",
        user.id,
        AuditAction.UPDATE,
        before=before,
        after=snapshot(user),
        description="Profile updated",
        client=client,
    )

    return user_to_response(user)
