"""
JWT issuing and validation.

- HS256 (or another HMAC algorithm) signed with a key from Settings
- The key is handed to TokenService at construction and never regenerated,
  so every instance sharing the configuration accepts the others' tokens
- Signature is always verified before any claim is read
- validate() additionally requires the subject to equal the account the
  caller resolved, not just whatever subject the token carries
- Refresh tokens are ordinary tokens with a longer lifetime; there is no
  type claim and no server-side revocation (logout is client-side discard)
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode
from pydantic import BaseModel, Field

from app.core.config import Settings, get_settings
from app.core.exceptions import TokenExpired, TokenInvalid

logger = logging.getLogger("hse.auth.jwt")

RESERVED_CLAIMS = ("sub", "iat", "exp")


def _ensure_canonical(token: str) -> None:
    """
    Reject a compact token unless each segment re-encodes to itself.

    Base64 decoding ignores the unused low bits of a final character, so
    without this a one-character change in the signature can still verify.
    """
    segments = token.split(".")
    if len(segments) != 3:
        raise TokenInvalid("Malformed token")
    try:
        for segment in segments:
            encoded = segment.encode("ascii")
            if base64url_encode(base64url_decode(encoded)) != encoded:
                raise TokenInvalid("Token is not canonically encoded")
    except (ValueError, TypeError) as e:
        raise TokenInvalid("Malformed token") from e


class TokenPayload(BaseModel):
    """Decoded, signature-verified claim set."""
    sub: str                                          # Principal identifier (email)
    iat: datetime                                     # Issued at
    exp: datetime                                     # Expiration
    claims: dict[str, Any] = Field(default_factory=dict)  # Extra claims

    @property
    def is_expired(self) -> bool:
        return self.exp <= datetime.now(timezone.utc)


class TokenService:
    """Issues and validates signed, expiring bearer tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(hours=8),
        refresh_ttl_multiplier: int = 7,
    ):
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = access_ttl * refresh_ttl_multiplier

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
            refresh_ttl_multiplier=settings.refresh_token_ttl_multiplier,
        )

    def __repr__(self) -> str:
        return f"<TokenService {self._algorithm} ttl={self.access_ttl}>"

    def issue(
        self,
        subject: str,
        extra_claims: Optional[dict[str, Any]] = None,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """
        Create a signed token for a subject.

        Args:
            subject: Principal identifier stored as the "sub" claim
            extra_claims: Optional extra claims. They cannot override
                sub, iat or exp.
            ttl: Lifetime; defaults to the configured access token TTL

        Returns:
            Encoded JWT string
        """
        if not subject:
            raise ValueError("subject is required")
        ttl = self.access_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")

        # Millisecond precision so short lifetimes still have exp > iat
        now = round(time.time(), 3)
        expire = round(now + ttl.total_seconds(), 3)
        if expire <= now:
            expire = now + 0.001

        payload: dict[str, Any] = dict(extra_claims or {})
        payload.update({"sub": subject, "iat": now, "exp": expire})

        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def issue_refresh(self, subject: str) -> str:
        """Create a long-lived token: same mechanism, multiplied TTL, no extra claims."""
        return self.issue(subject, ttl=self.refresh_ttl)

    def decode(self, token: str, verify_expiry: bool = True) -> TokenPayload:
        """
        Verify the signature and decode the claim set.

        Raises:
            TokenInvalid: Malformed input, bad signature, missing claims
            TokenExpired: Expiry has elapsed (only when verify_expiry is set)
        """
        if not isinstance(token, str) or not token:
            raise TokenInvalid("Token is empty")

        _ensure_canonical(token)

        try:
            raw = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                # Expiry is checked below with sub-second precision
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError as e:
            raise TokenInvalid(f"Invalid token: {e}") from e
        except (ValueError, TypeError, KeyError) as e:
            raise TokenInvalid("Malformed token") from e

        sub = raw.get("sub")
        iat = raw.get("iat")
        exp = raw.get("exp")
        if not isinstance(sub, str) or not sub:
            raise TokenInvalid("Token has no subject")
        if not isinstance(iat, (int, float)) or not isinstance(exp, (int, float)):
            raise TokenInvalid("Token has no validity window")
        if exp <= iat:
            raise TokenInvalid("Token expires before it was issued")

        if verify_expiry and exp <= time.time():
            raise TokenExpired()

        return TokenPayload(
            sub=sub,
            iat=datetime.fromtimestamp(iat, tz=timezone.utc),
            exp=datetime.fromtimestamp(exp, tz=timezone.utc),
            claims={k: v for k, v in raw.items() if k not in RESERVED_CLAIMS},
        )

    def extract_subject(self, token: str) -> str:
        """
        Return the subject of a signature-valid token, ignoring expiry.

        Raises:
            TokenInvalid: If the token is malformed or the signature is wrong
        """
        return self.decode(token, verify_expiry=False).sub

    def extract_claim(self, token: str, name: str, default: Any = None) -> Any:
        """Return one extra claim from a signature-valid token, ignoring expiry."""
        return self.decode(token, verify_expiry=False).claims.get(name, default)

    def validate(self, token: str, expected_subject: str) -> bool:
        """
        True only if the signature verifies, the token is unexpired, and its
        subject equals expected_subject. Never raises.
        """
        try:
            payload = self.decode(token)
        except TokenExpired:
            logger.debug("Rejected expired token")
            return False
        except TokenInvalid as e:
            logger.debug("Rejected invalid token: %s", e.message)
            return False

        if not expected_subject or payload.sub != expected_subject:
            logger.warning("Token subject does not match the expected account")
            return False
        return True


@lru_cache
def get_token_service() -> TokenService:
    """Process-wide TokenService built from Settings."""
    return TokenService.from_settings(get_settings())
