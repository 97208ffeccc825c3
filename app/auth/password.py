"""
Password hashing with Argon2id.

Argon2id is the recommended password hashing algorithm because:
- Memory-hard (resists GPU/ASIC attacks)
- Side-channel resistant (id variant)
- Winner of the Password Hashing Competition

The stored blob is argon2's PHC string. It names the algorithm and its
parameters and carries the random salt and the derived key, so parameters
can be raised later without invalidating existing hashes.
"""

import secrets
import string
from functools import lru_cache
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import Argon2Error, InvalidHashError

from app.core.config import Argon2Params, get_argon2_params
from app.core.exceptions import InvalidCredentialInput, WeakCredential

MIN_PASSWORD_LENGTH = 8
SPECIAL_CHARACTERS = set("!@#$%^&*()_+-=[]{};':\"\\|,.<>/?")


def build_hasher(params: Argon2Params) -> PasswordHasher:
    """Create an Argon2id hasher from configured cost parameters."""
    return PasswordHasher(
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=params.hash_len,
        salt_len=params.salt_len,
    )


@lru_cache
def get_hasher() -> PasswordHasher:
    """Process-wide hasher, built on first use from the ARGON2_* settings."""
    return build_hasher(get_argon2_params())


@lru_cache
def _dummy_hash() -> str:
    # Verified against when an account does not exist so that unknown emails
    # cost the same as wrong passwords.
    return get_hasher().hash(secrets.token_urlsafe(16))


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: The plaintext password to hash

    Returns:
        The hashed password string (includes algorithm, params, salt, and hash)

    Raises:
        InvalidCredentialInput: If the password is None or empty
    """
    if not password:
        raise InvalidCredentialInput()
    return get_hasher().hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Never raises: a malformed hash or an internal argon2 failure reads the
    same as a wrong password.
    """
    if not password or not password_hash:
        return False
    try:
        return get_hasher().verify(password_hash, password)
    except (Argon2Error, InvalidHashError):
        return False
    except (ValueError, TypeError):
        # Non-ASCII or non-string blobs fail before argon2 sees them
        return False


def burn_verification(password: Optional[str]) -> None:
    """Spend one verification's worth of work for a non-existent account."""
    verify_password(password or "", _dummy_hash())


def needs_rehash(password_hash: str) -> bool:
    """
    Check if a password hash needs to be rehashed.

    This is useful when upgrading security parameters over time.
    After a successful login, check this and rehash if needed.
    """
    try:
        return get_hasher().check_needs_rehash(password_hash)
    except InvalidHashError:
        return True


def generate_temp_password(length: int = 16) -> str:
    """Generate a random password that satisfies the strength policy."""
    if length < 12:
        length = 12

    password = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice("!@#$%^&*"),
    ]

    alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
    password.extend(secrets.choice(alphabet) for _ in range(length - 4))

    secrets.SystemRandom().shuffle(password)

    return "".join(password)


def validate_password_strength(
    password: Optional[str],
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> tuple[bool, list[str]]:
    """
    Validate password meets minimum security requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    - Does not contain the account's first or last name (case-insensitive)

    Returns:
        Tuple of (is_valid, list_of_issues)
    """
    if password is None or not password.strip():
        return False, ["Password must not be empty"]

    issues = []

    if len(password) < MIN_PASSWORD_LENGTH:
        issues.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if not any(c.isupper() for c in password):
        issues.append("Password must contain at least one uppercase letter")

    if not any(c.islower() for c in password):
        issues.append("Password must contain at least one lowercase letter")

    if not any(c.isdigit() for c in password):
        issues.append("Password must contain at least one digit")

    if not any(c in SPECIAL_CHARACTERS for c in password):
        issues.append("Password must contain at least one special character")

    lowered = password.lower()
    if first_name and first_name.strip() and first_name.strip().lower() in lowered:
        issues.append("Password must not contain your first name")
    if last_name and last_name.strip() and last_name.strip().lower() in lowered:
        issues.append("Password must not contain your last name")

    return len(issues) == 0, issues


def is_password_strong(
    password: Optional[str],
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> bool:
    is_valid, _ = validate_password_strength(password, first_name, last_name)
    return is_valid


def ensure_password_strength(
    password: Optional[str],
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> None:
    """Raise WeakCredential listing every failed requirement."""
    is_valid, issues = validate_password_strength(password, first_name, last_name)
    if not is_valid:
        raise WeakCredential(issues)
