"""
Application configuration.

All settings are read once from the environment (and an optional .env file)
into an immutable Settings object. Components receive the object at
construction instead of reading module-level globals.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import ConfigurationError

# Base directory of the project (parent of 'app')
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Database Directory
DB_DIR = BASE_DIR / "db"

HMAC_ALGORITHMS = {"HS256", "HS384", "HS512"}
MIN_SECRET_KEY_LENGTH = 32


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Argon2Params(BaseModel):
    """Argon2id cost parameters (memory cost in KiB)."""

    model_config = ConfigDict(frozen=True)

    time_cost: int = Field(default=3, ge=2)
    memory_cost: int = Field(default=65536, ge=65536)
    parallelism: int = Field(default=4, ge=1)
    hash_len: int = Field(default=32, ge=32)
    salt_len: int = Field(default=16, ge=16)


class Settings(BaseModel):
    """Process-wide, read-only configuration."""

    model_config = ConfigDict(frozen=True)

    # Token signing
    jwt_secret_key: str = Field(repr=False)
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=480, gt=0)
    refresh_token_ttl_multiplier: int = Field(default=7, ge=1)

    argon2: Argon2Params = Field(default_factory=Argon2Params)

    # Persistence
    database_url: str = f"sqlite+aiosqlite:///{DB_DIR / 'hse.db'}"
    sql_debug: bool = False

    # HTTP
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    trusted_hosts: list[str] = Field(default_factory=lambda: ["localhost", "127.0.0.1"])
    enable_docs: bool = True

    # Logging and audit
    log_level: str = "INFO"
    audit_workers: int = Field(default=1, ge=1)
    audit_queue_size: int = Field(default=10000, ge=1)

    # First admin account created on an empty user table
    bootstrap_admin_email: str = "admin@example.com"
    bootstrap_admin_password: Optional[str] = Field(default=None, repr=False)

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_expire_minutes * 60


def _build(model, values: dict):
    # Raw environment strings are coerced and range-checked by pydantic
    try:
        return model(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_argon2_params() -> Argon2Params:
    """
    Read only the ARGON2_* variables.

    The hasher needs nothing else, so it can be configured without a
    signing key.
    """
    load_dotenv()

    return _build(Argon2Params, {
        "time_cost": os.getenv("ARGON2_TIME_COST", "3"),
        "memory_cost": os.getenv("ARGON2_MEMORY_COST", "65536"),
        "parallelism": os.getenv("ARGON2_PARALLELISM", "4"),
        "hash_len": os.getenv("ARGON2_HASH_LEN", "32"),
        "salt_len": os.getenv("ARGON2_SALT_LEN", "16"),
    })


def load_settings() -> Settings:
    """
    Build Settings from environment variables.

    Raises:
        ConfigurationError: If the signing key is missing or too short, the
            algorithm is not an HMAC algorithm, or a value is malformed or
            out of range.
    """
    load_dotenv()

    secret = os.getenv("JWT_SECRET_KEY", "")
    if not secret:
        raise ConfigurationError(
            "JWT_SECRET_KEY is required. All instances must share the same key; "
            "set it in the environment or a .env file."
        )
    if len(secret) < MIN_SECRET_KEY_LENGTH:
        raise ConfigurationError(
            f"JWT_SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters."
        )

    algorithm = os.getenv("JWT_ALGORITHM", "HS256").upper()
    if algorithm not in HMAC_ALGORITHMS:
        raise ConfigurationError(f"JWT_ALGORITHM must be one of {sorted(HMAC_ALGORITHMS)}")

    values = {
        "jwt_secret_key": secret,
        "jwt_algorithm": algorithm,
        "access_token_expire_minutes": os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"),
        "refresh_token_ttl_multiplier": os.getenv("REFRESH_TOKEN_TTL_MULTIPLIER", "7"),
        "argon2": load_argon2_params(),
        "sql_debug": _env_bool("SQL_DEBUG"),
        "cors_allow_origins": _env_list("CORS_ALLOW_ORIGINS", "http://localhost:3000"),
        "trusted_hosts": _env_list("TRUSTED_HOSTS", "localhost,127.0.0.1"),
        "enable_docs": _env_bool("ENABLE_DOCS", "true"),
        "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
        "audit_workers": os.getenv("AUDIT_WORKERS", "1"),
        "audit_queue_size": os.getenv("AUDIT_QUEUE_SIZE", "10000"),
        "bootstrap_admin_email": os.getenv("BOOTSTRAP_ADMIN_EMAIL", "admin@example.com").lower(),
        "bootstrap_admin_password": os.getenv("BOOTSTRAP_ADMIN_PASSWORD") or None,
    }
    if os.getenv("DATABASE_URL"):
        values["database_url"] = os.environ["DATABASE_URL"]

    return _build(Settings, values)


@lru_cache
def get_argon2_params() -> Argon2Params:
    return load_argon2_params()


@lru_cache
def get_settings() -> Settings:
    """
    Return the Settings singleton.

    Loaded once per process; the signing key is never regenerated at runtime.
    In tests, call get_settings.cache_clear() after changing the environment.
    """
    return load_settings()
