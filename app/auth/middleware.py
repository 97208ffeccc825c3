"""
Per-request bearer token authentication.

Request states: no token -> token present -> valid | invalid | expired.

- No "Authorization: Bearer" header: the request continues anonymously
- Malformed or badly signed token: logged, request continues anonymously
- Subject resolves to no account or a disabled one: request fails with 401
- Token expired or bound to another subject: request continues anonymously
- Valid: the Principal is stored on request.state.principal

Route dependencies (app.auth.dependencies) reject anonymous access where a
route needs it. CORS preflight (OPTIONS) skips all of this.
"""

import logging
from typing import Callable, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.auth.jwt import TokenService
from app.auth.principal import Principal, PrincipalLookup
from app.core.exceptions import PrincipalError, TokenInvalid

logger = logging.getLogger("hse.auth.middleware")

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an "Authorization: Bearer <token>" header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


class Authenticator:
    """Turns a bearer token into a Principal. Knows nothing about HTTP."""

    def __init__(self, token_service: TokenService, lookup: PrincipalLookup):
        self.token_service = token_service
        self.lookup = lookup

    async def authenticate(self, token: Optional[str]) -> Optional[Principal]:
        """
        Resolve a token to a Principal.

        Returns:
            The Principal, or None when the request should proceed anonymously

        Raises:
            PrincipalNotFound: The subject no longer maps to an account
            PrincipalDisabled: The account is disabled
        """
        if not token:
            return None

        try:
            subject = self.token_service.extract_subject(token)
        except TokenInvalid as e:
            logger.warning("Ignoring unusable bearer token: %s", e.message)
            return None

        principal = await self.lookup.find_by_subject(subject)

        if not self.token_service.validate(token, principal.subject):
            logger.info("Bearer token for %s is expired or not bound to the account", principal.subject)
            return None

        return principal


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Attach the authenticated Principal (or None) to every request."""

    def __init__(self, app, authenticator: Authenticator):
        super().__init__(app)
        self.authenticator = authenticator

    async def dispatch(self, request: Request, call_next: Callable):
        if request.method.upper() == "OPTIONS":
            return await call_next(request)

        request.state.principal = None
        token = extract_bearer_token(request.headers.get("Authorization"))

        try:
            principal = await self.authenticator.authenticate(token)
        except PrincipalError as e:
            logger.warning("Authentication failed for %s %s: %s", request.method, request.url.path, e.message)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": e.message},
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.principal = principal
        return await call_next(request)
