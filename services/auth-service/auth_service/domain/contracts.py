"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class SignupInput:
    """Validated inputs required to register a password account."""

    name: str
    email: str
    password: str
    photo: str | None = None


@dataclass(slots=True)
class LoginInput:
    email: str
    password: str


@dataclass(slots=True)
class ChangePasswordInput:
    old_password: str
    new_password: str


@dataclass(slots=True)
class OAuthIdentity:
    """Identity already resolved by an external provider (e.g. Google)."""

    provider: str
    email: str
    name: str
    photo: str | None = None


@dataclass(slots=True)
class NewAccount:
    """Fully-derived field set handed to the store when inserting an account."""

    email: str
    name: str
    password_hash: str | None
    photo: str | None = None
    role: str = "user"
    email_verified: bool = False
    password_changed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class TokenGuard:
    """Condition for an atomic check-and-consume update.

    The update applies only when ``hash_field`` equals ``token_hash`` and
    ``expiry_field`` is not earlier than ``now``.
    """

    hash_field: str
    expiry_field: str
    token_hash: str
    now: datetime
