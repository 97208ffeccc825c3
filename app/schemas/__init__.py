"""
Pydantic schemas for API request/response validation.

These schemas provide:
- Input validation with security constraints
- Output serialization
- OpenAPI documentation generation
"""

from app.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    LoginResponse,
    TokenRefreshRequest,
    TokenRefreshResponse,
    PasswordChangeRequest,
    PrincipalResponse,
    MessageResponse,
)
from app.schemas.user import (
    UserUpdate,
    UserResponse,
    user_to_response,
)

__all__ = [
    # Auth
    "RegisterRequest",
    "LoginRequest",
    "LoginResponse",
    "TokenRefreshRequest",
    "TokenRefreshResponse",
    "PasswordChangeRequest",
    "PrincipalResponse",
    "MessageResponse",
    # User
    "UserUpdate",
    "UserResponse",
    "user_to_response",
]
