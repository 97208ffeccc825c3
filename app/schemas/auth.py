"""
Authentication-related schemas.

Password strength is not checked here: the account service applies the
policy (it needs the account's names) and reports every failed rule.
"""

import re
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Self-registration."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr = Field(description="User email address (login handle)")
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("first_name", "last_name")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        # Remove potentially dangerous characters
        v = re.sub(r'[<>"\';\\]', '', v)
        return v.strip()


class LoginRequest(BaseModel):
    """Login request with email and password."""

    email: EmailStr = Field(description="User email address")
    password: str = Field(min_length=1, max_length=128, description="User password")

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()


class LoginResponse(BaseModel):
    """Login response with tokens."""

    access_token: str = Field(description="JWT access token")
    refresh_token: str = Field(description="JWT refresh token for token renewal")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(description="Access token expiration in seconds")

    # User info
    user_id: int = Field(description="User's database ID")
    email: str = Field(description="User's email")
    role: Optional[str] = Field(default=None, description="User's role")
    full_name: str = Field(description="User's full name")


class TokenRefreshRequest(BaseModel):
    """Request to refresh access token."""

    refresh_token: str = Field(min_length=1, description="Current refresh token")


class TokenRefreshResponse(BaseModel):
    """Response with new access token."""

    access_token: str = Field(description="New JWT access token")
    refresh_token: str = Field(description="The refresh token that was presented")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(description="Access token expiration in seconds")


class PasswordChangeRequest(BaseModel):
    """Request to change password."""

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class PrincipalResponse(BaseModel):
    """The authenticated caller."""

    user_id: int
    email: str
    full_name: str
    role: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
