"""
HSE Curriculum - security and audit core

Main FastAPI application with security hardening.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.api import api_router
from app.auth.audit import AuditRecorder
from app.auth.jwt import get_token_service
from app.auth.middleware import AuthenticationMiddleware, Authenticator
from app.auth.password import generate_temp_password, is_password_strong
from app.auth.principal import SqlAlchemyPrincipalLookup
from app.core.config import get_settings
from app.core.database import async_session_maker, close_db, engine, init_db
from app.core.exceptions import SecurityError, WeakCredential
from app.models.user import RoleName
from app.services.accounts import AccountService

VERSION = "1.0.0"

settings = get_settings()

logger = logging.getLogger("hse.main")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    )


# =============================================================================
# Application Lifespan (startup/shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    configure_logging(settings.log_level)
    logger.info("Starting HSE security core %s", VERSION)

    await init_db()
    logger.info("Database initialized")

    await create_default_admin_if_needed()

    recorder = AuditRecorder(
        async_session_maker,
        workers=settings.audit_workers,
        max_queue_size=settings.audit_queue_size,
    )
    await recorder.start()
    app.state.audit_recorder = recorder

    yield

    logger.info("Shutting down")
    await recorder.stop()
    await close_db()


async def create_default_admin_if_needed():
    """Create an ADMIN account if the users table is empty."""
    async with async_session_maker() as session:
        accounts = AccountService(session)
        if await accounts.count_users() > 0:
            return

        password = settings.bootstrap_admin_password
        generated = password is None
        while password is None or (generated and not is_password_strong(password, "HSE", "Administrator")):
            password = generate_temp_password()

        await accounts.register(
            first_name="HSE",
            last_name="Administrator",
            email=settings.bootstrap_admin_email,
            password=password,
            role=RoleName.ADMIN,
        )

        logger.warning("Default admin account created: %s", settings.bootstrap_admin_email)
        if generated:
            # Shown once; it is not stored anywhere else
            logger.warning("Temporary admin password: %s (change it immediately)", password)


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="HSE Security API",
    version=VERSION,
    description="Authentication, authorization and audit for the HSE curriculum service",
    lifespan=lifespan,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
)

app.state.authenticator = Authenticator(
    get_token_service(),
    SqlAlchemyPrincipalLookup(async_session_maker),
)


# =============================================================================
# Security Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        # Swagger UI needs its CDN assets
        if not request.url.path.startswith(("/docs", "/redoc")):
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for tracing."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID") or secrets.token_urlsafe(8)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


# =============================================================================
# Add Middleware (order matters - last added runs first)
# =============================================================================

app.add_middleware(AuthenticationMiddleware, authenticator=app.state.authenticator)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)

# Trusted hosts (prevent host header attacks)
if "*" not in settings.trusted_hosts:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

# CORS - outermost so preflight is answered before authentication
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Routes
# =============================================================================

@app.get("/", tags=["root"])
def home():
    """Root endpoint."""
    return {
        "name": "HSE Security API",
        "version": VERSION,
        "docs": "/docs" if settings.enable_docs else None,
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Health check endpoint for load balancers and monitoring."""
    db_status = "healthy"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        db_status = "unhealthy"

    recorder = getattr(request.app.state, "audit_recorder", None)
    audit_status = "running" if recorder is not None and recorder.running else "stopped"

    return {
        "status": "healthy" if db_status == "healthy" and audit_status == "running" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "database": db_status,
        "audit": audit_status,
    }


# Include API routers
app.include_router(api_router, prefix="/v1")


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(SecurityError)
async def security_exception_handler(request: Request, exc: SecurityError):
    """Map core errors to their HTTP status."""
    content = {"detail": exc.message}
    if isinstance(exc, WeakCredential):
        content["issues"] = exc.issues

    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    if exc.status_code >= 500:
        logger.error("%s on %s %s", type(exc).__name__, request.method, request.url.path)

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to prevent information leakage."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception("[%s] Unhandled exception", request_id)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal error occurred",
            "request_id": request_id,
        },
    )


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
