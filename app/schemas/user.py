"""
User-related schemas.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.user import User


class UserUpdate(BaseModel):
    """Profile fields a user (or staff) may change."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)

    @field_validator("first_name", "last_name")
    @classmethod
    def sanitize_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = re.sub(r'[<>"\';\\]', '', v)
        return v.strip()


class UserResponse(BaseModel):
    """Schema for user response (no sensitive data)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    role: Optional[str] = None
    status: bool
    created_at: datetime
    last_login: Optional[datetime] = None


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        role=user.role_name,
        status=user.status,
        created_at=user.created_at,
        last_login=user.last_login,
    )
