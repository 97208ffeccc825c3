"""
Database Models

This module exports all SQLAlchemy models for the application.
"""

from app.models.user import User, Role, RoleName
from app.models.audit import AuditLog, AuditAction

__all__ = [
    # User models
    "User",
    "Role",
    "RoleName",
    # Audit models
    "AuditLog",
    "AuditAction",
]
