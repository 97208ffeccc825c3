"""
API Router configuration.

Aggregates all v1 API endpoints with proper tagging and prefixes.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    admin_users,
    auth,
    users,
)

api_router = APIRouter()

# Authentication (no auth required for register/login/refresh)
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# User profiles (owner or admin/support)
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)

# Account administration (admin only)
api_router.include_router(
    admin_users.router,
    prefix="/admin/users",
    tags=["admin"]
)
