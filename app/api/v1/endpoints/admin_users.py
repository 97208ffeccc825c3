"""
Administrative account management.

Requires the ADMIN role. Disabling an account takes effect on the next
request that presents one of its tokens.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.audit import AuditRecorder, ClientMeta
from app.auth.dependencies import (
    get_account_service,
    get_audit_recorder,
    get_client_meta,
    require_admin,
)
from app.auth.principal import Principal
from app.models.audit import AuditAction
from app.schemas.user import UserResponse, user_to_response
from app.services.accounts import AccountService, snapshot

router = APIRouter()


async def _set_status(
    user_id: int,
    enabled: bool,
    admin: Principal,
    client: ClientMeta,
    accounts: AccountService,
    audit: AuditRecorder,
) -> UserResponse:
    if user_id == admin.user_id and not enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot disable yourself",
        )

    user = await accounts.get_by_id(user_id)
    before = snapshot(user)

    await accounts.set_status(user, enabled)

    audit.record(
        admin,
        "users",
        user.id,
        AuditAction.ENABLE if enabled else AuditAction.DISABLE,
        before=before,
        after=snapshot(user),
        description="Admin enabled user" if enabled else "Admin disabled user",
        client=client,
    )

    return user_to_response(user)


@router.patch("/{user_id}/disable", response_model=UserResponse)
async def disable_user(
    user_id: int,
    admin: Principal = Depends(require_admin),
    client: ClientMeta = Depends(get_client_meta),
    accounts: AccountService = Depends(get_account_service),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return await _set_status(user_id, False, admin, client, accounts, audit)


@router.patch("/{user_id}/enable", response_model=UserResponse)
async def enable_user(
    user_id: int,
    admin: Principal = Depends(require_admin),
    client: ClientMeta = Depends(get_client_meta),
    accounts: AccountService = Depends(get_account_service),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return await _set_status(user_id, True, admin, client, accounts, audit)
