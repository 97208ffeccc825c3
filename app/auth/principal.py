"""
Principal: the authenticated identity attached to one request.

A Principal is rebuilt on every request from the token subject plus a
lookup against the account store. It is never cached between requests, so
disabling an account takes effect on the very next call.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import PrincipalDisabled, PrincipalNotFound
from app.models.user import User


@dataclass(frozen=True)
class Principal:
    user_id: int
    subject: str                  # login handle (email)
    first_name: str = ""
    last_name: str = ""
    role: Optional[str] = None    # role name, None when unresolvable
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            user_id=user.id,
            subject=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role_name,
            is_active=bool(user.status),
        )


class PrincipalLookup(Protocol):
    """Resolves a token subject to an active Principal."""

    async def find_by_subject(self, subject: str) -> Principal:
        """
        Raises:
            PrincipalNotFound: No account has this subject
            PrincipalDisabled: The account exists but is disabled
        """
        ...


class SqlAlchemyPrincipalLookup:
    """PrincipalLookup backed by the users table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_subject(self, subject: str) -> Principal:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(User.email == subject.lower())
            )
            user = result.scalar_one_or_none()

        if user is None:
            raise PrincipalNotFound()
        if not user.status:
            raise PrincipalDisabled()
        return Principal.from_user(user)
