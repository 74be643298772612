from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from schemas import AccountProfile


def normalize_email(email: str) -> str:
    """Return the canonical (trimmed, lower-cased) form of an email address."""
    return email.strip().lower()


@dataclass(slots=True)
class Account:
    """Aggregate root for a user's credentials and lifecycle state.

    ``password_hash`` is ``None`` for accounts provisioned through a third-party
    identity provider; such accounts can never take part in password flows.
    """

    account_id: str
    email: str
    name: str
    password_hash: str | None = None
    role: str = "user"
    photo: str | None = None
    email_verified: bool = False
    email_verification_token_hash: str | None = None
    email_verification_expires_at: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires_at: datetime | None = None
    password_changed_at: datetime | None = None
    active: bool = True
    created_at: datetime | None = None

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def changed_password_after(self, issued_at: float) -> bool:
        """Return ``True`` when the password watermark is later than ``issued_at`` (epoch seconds)."""
        if self.password_changed_at is None:
            return False
        return self.password_changed_at.timestamp() > issued_at

    def to_profile(self) -> AccountProfile:
        return AccountProfile(
            id=self.account_id,
            email=self.email,
            name=self.name,
            role=self.role,
            photo=self.photo,
            email_verified=self.email_verified,
        )
