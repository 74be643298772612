"""Utilities for issuing and validating access, refresh and opaque tokens."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import hashlib
import logging
import secrets
from typing import Any, Callable

import jwt

from ..config import Settings

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class AccessClaims:
    """Claims embedded in an access token."""

    account_id: str
    email: str
    email_verified: bool
    name: str
    role: str
    photo: str | None = None
    issued_at: float = 0.0


@dataclass(frozen=True, slots=True)
class RefreshClaims:
    account_id: str
    issued_at: float


class TokenCodec:
    """Mint and verify the two signed token types used by the service.

    Access and refresh tokens are HS256 JWTs signed with separate secrets and
    tagged with a ``typ`` claim, so one can never be replayed as the other.
    Verification returns ``None`` for any malformed, tampered, foreign or
    expired token instead of raising.

    ``clock`` supplies the issue time; it is shared with the account
    lifecycle so ``iat`` and the password-change watermark use one time source.
    """

    def __init__(self, settings: Settings, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._issuer = settings.jwt_issuer
        self._access_secret = settings.access_token_secret
        self._access_ttl = settings.access_token_ttl_seconds
        self._refresh_secret = settings.refresh_token_secret
        self._refresh_ttl = settings.refresh_token_ttl_seconds

    @property
    def access_ttl_seconds(self) -> int:
        return self._access_ttl

    def issue_access_token(self, claims: AccessClaims) -> str:
        """Create a signed access token carrying the account's profile claims.

        ``iat`` is written with sub-second precision so it can be ordered
        against the account's ``password_changed_at`` watermark.

        Parameters
        ----------
        claims:
            Profile snapshot to embed. ``issued_at`` is ignored; the codec's
            clock decides it.

        Returns
        -------
        str
            Compact JWS string valid for ``access_token_ttl_seconds``.
        """
        now = self._clock().timestamp()
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": claims.account_id,
            "typ": ACCESS_TOKEN_TYPE,
            "email": claims.email,
            "email_verified": claims.email_verified,
            "name": claims.name,
            "role": claims.role,
            "photo": claims.photo,
            "iat": now,
            "exp": int(now) + self._access_ttl,
        }
        return jwt.encode(payload, self._access_secret, algorithm=_ALGORITHM)

    def issue_refresh_token(self, account_id: str) -> str:
        """Create a signed refresh token that identifies the account only."""
        now = self._clock().timestamp()
        payload = {
            "iss": self._issuer,
            "sub": account_id,
            "typ": REFRESH_TOKEN_TYPE,
            "iat": now,
            "exp": int(now) + self._refresh_ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=_ALGORITHM)

    def verify_access_token(self, token: str) -> AccessClaims | None:
        """Decode an access token.

        Returns
        -------
        AccessClaims | None
            The embedded claims, or ``None`` when the token is not a valid,
            unexpired access token signed by this service.
        """
        payload = self._decode(token, self._access_secret, ACCESS_TOKEN_TYPE)
        if payload is None:
            return None
        return AccessClaims(
            account_id=payload["sub"],
            email=payload.get("email", ""),
            email_verified=bool(payload.get("email_verified", False)),
            name=payload.get("name", ""),
            role=payload.get("role", "user"),
            photo=payload.get("photo"),
            issued_at=float(payload["iat"]),
        )

    def verify_refresh_token(self, token: str) -> RefreshClaims | None:
        payload = self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)
        if payload is None:
            return None
        return RefreshClaims(account_id=payload["sub"], issued_at=float(payload["iat"]))

    def _decode(self, token: str, secret: str, expected_type: str) -> dict[str, Any] | None:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub", "iss"]},
            )
        except jwt.PyJWTError as exc:
            logger.debug("rejected %s token: %s", expected_type, exc)
            return None
        if payload.get("typ") != expected_type:
            logger.debug("rejected token with type %r, expected %r", payload.get("typ"), expected_type)
            return None
        return payload


def generate_opaque_token() -> tuple[str, str]:
    """Generate a single-use token string and the SHA-256 hash that gets persisted."""
    token = secrets.token_urlsafe(32)
    return token, hash_opaque_token(token)


def hash_opaque_token(token: str) -> str:
    """Return the SHA-256 hex digest for an opaque token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
