"""
Authentication endpoints.

Provides:
- Registration
- Login (email/password -> JWT tokens)
- Token refresh
- Logout
- Password change
- Current principal
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.audit import Actor, AuditRecorder, ClientMeta
from app.auth.dependencies import (
    get_account_service,
    get_audit_recorder,
    get_authenticator,
    get_client_meta,
    get_current_principal,
)
from app.auth.jwt import TokenService, get_token_service
from app.auth.middleware import Authenticator
from app.auth.principal import Principal
from app.core.exceptions import InvalidCredentials, PrincipalError
from app.models.audit import AuditAction
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordChangeRequest,
    PrincipalResponse,
    RegisterRequest,
    TokenRefreshRequest,
    TokenRefreshResponse,
)
from app.schemas.user import UserResponse, user_to_response
from app.services.accounts import AccountService, snapshot

router = APIRouter()


def _access_claims(principal: Principal) -> dict:
    return {"user_id": principal.user_id, "full_name": principal.full_name}


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    client: ClientMeta = Depends(get_client_meta),
    accounts: AccountService = Depends(get_account_service),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """Create an account with the USER role."""
    user = await accounts.register(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        password=data.password,
    )

    audit.record(
        Actor(user_id=user.id, email=user.email, name=user.full_name),
        "users",
        user.id,
        AuditAction.INSERT,
        after=snapshot(user),
        description="User registered",
        client=client,
    )

    return user_to_response(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    client: ClientMeta = Depends(get_client_meta),
    accounts: AccountService = Depends(get_account_service),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """
    Authenticate user and return JWT tokens.

    Failures are a generic 401 that does not reveal whether the email exists.
    """
    principal = await accounts.authenticate(login_data.email, login_data.password)

    access_token = tokens.issue(principal.subject, _access_claims(principal))
    refresh_token = tokens.issue_refresh(principal.subject)

    audit.record_simple(principal, AuditAction.LOGIN, "Successful login", client)

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(tokens.access_ttl.total_seconds()),
        user_id=principal.user_id,
        email=principal.subject,
        role=principal.role,
        full_name=principal.full_name,
    )


@router.post("/refresh", response_model=TokenRefreshResponse)
async def refresh_token(
    token_data: TokenRefreshRequest,
    authenticator: Authenticator = Depends(get_authenticator),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Issue a new access token from a refresh token.

    The refresh token goes through the same checks as a bearer token:
    signature, account still active, subject binding and expiry.
    """
    try:
        principal = await authenticator.authenticate(token_data.refresh_token)
    except PrincipalError:
        principal = None

    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token invalid or expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenRefreshResponse(
        access_token=tokens.issue(principal.subject, _access_claims(principal)),
        refresh_token=token_data.refresh_token,
        expires_in=int(tokens.access_ttl.total_seconds()),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    principal: Principal = Depends(get_current_principal),
    client: ClientMeta = Depends(get_client_meta),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """
    Record a logout.

    Tokens are stateless: the client discards them and they stay valid
    until they expire.
    """
    audit.record_simple(principal, AuditAction.LOGOUT, "Logout", client)
    return MessageResponse(message="Successfully logged out")


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    password_data: PasswordChangeRequest,
    principal: Principal = Depends(get_current_principal),
    client: ClientMeta = Depends(get_client_meta),
    accounts: AccountService = Depends(get_account_service),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """Change the current user's password."""
    user = await accounts.get_by_id(principal.user_id)

    try:
        await accounts.change_password(user, password_data.current_password, password_data.new_password)
    except InvalidCredentials as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    audit.record(
        principal,
        "users",
        user.id,
        AuditAction.CHANGE_PASSWORD,
        description="Password changed",
        client=client,
    )

    return MessageResponse(message="Password changed successfully")


@router.get("/me", response_model=PrincipalResponse)
async def get_current_principal_info(
    principal: Principal = Depends(get_current_principal),
):
    """Get the authenticated caller."""
    return PrincipalResponse(
        user_id=principal.user_id,
        email=principal.subject,
        full_name=principal.full_name,
        role=principal.role,
    )
