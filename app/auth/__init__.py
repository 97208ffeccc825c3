"""
Security and audit core.

Provides:
- Password hashing (Argon2id) and the strength policy
- JWT issuing and validation
- Bearer token authentication middleware
- Authorization predicates
- Asynchronous audit recording
"""

from app.auth.jwt import (
    TokenPayload,
    TokenService,
    get_token_service,
)
from app.auth.password import (
    hash_password,
    verify_password,
    is_password_strong,
    validate_password_strength,
)
from app.auth.principal import (
    Principal,
    PrincipalLookup,
    SqlAlchemyPrincipalLookup,
)
from app.auth.guards import (
    is_admin,
    is_admin_or_support,
    is_owner,
    can_access_resource,
)
from app.auth.audit import (
    Actor,
    AuditRecorder,
    ClientMeta,
    client_meta_from_request,
)

__all__ = [
    # JWT
    "TokenPayload",
    "TokenService",
    "get_token_service",
    # Password
    "hash_password",
    "verify_password",
    "is_password_strong",
    "validate_password_strength",
    # Principal
    "Principal",
    "PrincipalLookup",
    "SqlAlchemyPrincipalLookup",
    # Guards
    "is_admin",
    "is_admin_or_support",
    "is_owner",
    "can_access_resource",
    # Audit
    "Actor",
    "AuditRecorder",
    "ClientMeta",
    "client_meta_from_request",
]
