"""
Authorization predicates.

The only place role names are compared. Callers ask these questions instead
of checking role strings themselves:

- privileged writes require is_admin
- resource-scoped reads/writes require is_owner or is_admin_or_support

A missing principal or one without a resolvable role is authorized for
nothing privileged.
"""

from typing import Optional

from app.auth.principal import Principal
from app.models.user import RoleName

STAFF_ROLES = frozenset({RoleName.ADMIN.value, RoleName.SUPPORT.value})


def _role_of(principal: Optional[Principal]) -> Optional[str]:
    if principal is None or not principal.is_active or not principal.role:
        return None
    return principal.role.upper()


def is_admin(principal: Optional[Principal]) -> bool:
    return _role_of(principal) == RoleName.ADMIN.value


def is_admin_or_support(principal: Optional[Principal]) -> bool:
    return _role_of(principal) in STAFF_ROLES


def is_owner(principal: Optional[Principal], resource_owner_id: Optional[int]) -> bool:
    if principal is None or not principal.is_active or resource_owner_id is None:
        return False
    return principal.user_id == resource_owner_id


def can_access_resource(principal: Optional[Principal], resource_owner_id: Optional[int]) -> bool:
    """Owner of the resource, or staff (admin/support)."""
    return is_owner(principal, resource_owner_id) or is_admin_or_support(principal)
