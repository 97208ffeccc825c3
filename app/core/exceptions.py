"""
Error taxonomy for the security and audit core.

The core raises these; it does not know about HTTP. Each class carries a
status_code hint that the exception handlers in app.main use when the error
reaches the API boundary.
"""

from typing import Optional


class SecurityError(Exception):
    """Base class for credential, token, principal and audit errors."""

    status_code: int = 400
    default_message: str = "Security error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(SecurityError):
    """Startup configuration is missing or unsafe."""

    status_code = 500
    default_message = "Invalid configuration"


# Credentials

class InvalidCredentialInput(SecurityError):
    """Empty or null password passed to hashing."""

    default_message = "Password must not be empty"


class WeakCredential(SecurityError):
    """Plaintext fails the strength policy."""

    default_message = "Password does not meet the security requirements"

    def __init__(self, issues: list[str], message: Optional[str] = None):
        self.issues = list(issues)
        super().__init__(message or f"{self.default_message}: {'; '.join(self.issues)}")


class InvalidCredentials(SecurityError):
    """
    Login or verification failure.

    Deliberately generic: never says whether the account exists.
    """

    status_code = 401
    default_message = "Invalid credentials"


# Tokens

class TokenError(SecurityError):
    status_code = 401
    default_message = "Invalid token"


class TokenInvalid(TokenError):
    """Bad signature, malformed input or subject mismatch."""


class TokenExpired(TokenError):
    default_message = "Token has expired"


# Principals

class PrincipalError(SecurityError):
    status_code = 401
    default_message = "Authentication failed"


class PrincipalNotFound(PrincipalError):
    default_message = "Account not found"


class PrincipalDisabled(PrincipalError):
    default_message = "Account is disabled"


class AuthorizationError(SecurityError):
    status_code = 403
    default_message = "Not authorized for this action"


# Accounts

class AccountExists(SecurityError):
    status_code = 409
    default_message = "Email already registered"


class AccountNotFound(SecurityError):
    status_code = 404
    default_message = "User not found"


# Audit

class AuditWriteFailed(SecurityError):
    """Internal to the audit recorder. Always caught and logged."""

    status_code = 500
    default_message = "Audit write failed"
