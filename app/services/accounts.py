"""
Account operations used by the auth and user endpoints.

Wraps the Credential Hasher and strength policy around the users table:
registration, login, password change, enable/disable and profile edits.
Every method commits its own change so callers can audit the committed
state afterwards.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.password import (
    burn_verification,
    ensure_password_strength,
    hash_password,
    needs_rehash,
    verify_password,
)
from app.auth.principal import Principal
from app.core.exceptions import AccountExists, AccountNotFound, InvalidCredentials
from app.models.user import Role, RoleName, User

logger = logging.getLogger("hse.accounts")

ROLE_DESCRIPTIONS = {
    RoleName.ADMIN: "Administrator with full access",
    RoleName.SUPPORT: "Support staff with read/write access to user records",
    RoleName.USER: "Regular user",
}


def snapshot(user: User) -> dict[str, Any]:
    """JSON-safe view of a user for audit before/after state. No password hash."""
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "role": user.role_name,
        "status": user.status,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "last_login": user.last_login.isoformat() if user.last_login else None,
    }


class AccountService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower().strip()))
        return result.scalar_one_or_none()

    async def get_by_id(self, user_id: int) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise AccountNotFound()
        return user

    async def get_role(self, name: RoleName) -> Role:
        """Return the role row, creating it on first use."""
        result = await self.db.execute(select(Role).where(Role.name == name.value))
        role = result.scalar_one_or_none()
        if role is None:
            role = Role(name=name.value, description=ROLE_DESCRIPTIONS.get(name))
            self.db.add(role)
            await self.db.flush()
        return role

    async def count_users(self) -> int:
        result = await self.db.execute(select(func.count(User.id)))
        return result.scalar() or 0

    async def list_users(self, skip: int = 0, limit: int = 100) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.id).offset(skip).limit(limit))
        return list(result.scalars())

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        role: RoleName = RoleName.USER,
    ) -> User:
        """
        Create an account.

        Raises:
            AccountExists: Email already registered
            WeakCredential: Password fails the strength policy
        """
        email = email.lower().strip()
        if await self.get_by_email(email) is not None:
            raise AccountExists()

        ensure_password_strength(password, first_name, last_name)

        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password_hash=hash_password(password),
            status=True,
        )
        user.role = await self.get_role(role)
        self.db.add(user)
        await self.db.commit()

        logger.info("Registered account %s with role %s", email, role.value)
        return user

    async def authenticate(self, email: str, password: str) -> Principal:
        """
        Check a login.

        Unknown account, wrong password and disabled account all raise the
        same InvalidCredentials, and an unknown account still costs one
        Argon2 verification.
        """
        user = await self.get_by_email(email) if email else None

        if user is None:
            burn_verification(password)
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()

        if not user.status:
            raise InvalidCredentials()

        # Security parameters were raised since this hash was made
        if needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)

        user.last_login = datetime.now(timezone.utc)
        await self.db.commit()

        return Principal.from_user(user)

    async def change_password(self, user: User, current_password: str, new_password: str) -> User:
        """
        Replace the stored hash.

        Raises:
            InvalidCredentials: current_password does not verify
            WeakCredential: new_password fails the strength policy
        """
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")

        ensure_password_strength(new_password, user.first_name, user.last_name)

        user.password_hash = hash_password(new_password)
        await self.db.commit()
        return user

    async def set_status(self, user: User, enabled: bool) -> User:
        user.status = enabled
        await self.db.commit()
        logger.info("Account %s %s", user.email, "enabled" if enabled else "disabled")
        return user

    async def update_profile(
        self,
        user: User,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        if first_name is not None:
            user.first_name = first_name
        if last_name is not None:
            user.last_name = last_name
        await self.db.commit()
        return user
