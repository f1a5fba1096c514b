"""Utilities for issuing and validating the engine's bearer tokens."""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import jwt

from ..config import Settings
from ..errors import TokenInvalid

Clock = Callable[[], datetime]

_ALGORITHM = "HS256"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TokenPair:
    """Encapsulates the access/refresh token pair returned to callers."""

    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int


class TokenCodec:
    """Signs and verifies HS256 JWTs bound to a single secret and issuer.

    The codec holds no state besides its settings and clock, so the same
    inputs always produce a token that verifies against the same
    secret/issuer pair.
    """

    def __init__(self, settings: Settings, clock: Clock = utcnow) -> None:
        self._secret = settings.jwt_secret
        self._issuer = settings.jwt_issuer
        self._access_ttl = settings.access_ttl_seconds
        self._refresh_ttl = settings.refresh_ttl_seconds
        self._clock = clock

    def issue_pair(self, subject: str, *, email: str | None, is_admin: bool) -> TokenPair:
        """Create a signed access token and a refresh token for ``subject``.

        Parameters
        ----------
        subject:
            Account identifier embedded in the ``sub`` claim.
        email:
            Contact email carried by the access token only.
        is_admin:
            Privilege flag carried by the access token only.

        Returns
        -------
        TokenPair
            Both encoded tokens with their lifetimes in seconds.
        """

        now = int(self._clock().timestamp())
        access_payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject,
            "email": email,
            "isAdmin": is_admin,
            "iat": now,
            "exp": now + self._access_ttl,
        }
        refresh_payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject,
            "iat": now,
            "exp": now + self._refresh_ttl,
        }
        return TokenPair(
            access_token=jwt.encode(access_payload, self._secret, algorithm=_ALGORITHM),
            access_expires_in=self._access_ttl,
            refresh_token=jwt.encode(refresh_payload, self._secret, algorithm=_ALGORITHM),
            refresh_expires_in=self._refresh_ttl,
        )

    def verify(self, token: str) -> dict[str, Any]:
        """Decode ``token`` and return its claims.

        Signature and issuer are checked by PyJWT; expiry is compared against
        the codec's clock so verification stays deterministic under an
        injected clock.

        Raises
        ------
        TokenInvalid
            When the token is malformed, signed with another secret, issued by
            another issuer, lacks required claims, or has expired.
        """

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={
                    "require": ["iss", "sub", "iat", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.PyJWTError as exc:
            raise TokenInvalid() from exc

        if int(self._clock().timestamp()) >= int(claims["exp"]):
            raise TokenInvalid("token has expired")
        return claims

    def verify_access(self, token: str) -> dict[str, Any]:
        claims = self.verify(token)
        if "isAdmin" not in claims:
            raise TokenInvalid("refresh token presented as access token")
        return claims

    def verify_refresh(self, token: str) -> dict[str, Any]:
        claims = self.verify(token)
        # refresh tokens never carry the access-only claims
        if "isAdmin" in claims or "email" in claims:
            raise TokenInvalid("access token presented as refresh token")
        return claims


def generate_reset_token() -> tuple[str, str]:
    """Generate a 256-bit reset token string and its SHA-256 hash."""
    token = secrets.token_hex(32)
    return token, hash_token(token)


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest for a token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
