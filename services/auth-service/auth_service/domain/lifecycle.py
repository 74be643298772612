"""Explicit state transitions for an account's verification, credential and activity state."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Callable

from .account import Account
from .contracts import TokenGuard
from .errors import PersistenceError
from .ports import CredentialStore
from ..security.passwords import PasswordHasher
from ..security.tokens import generate_opaque_token, utcnow

logger = logging.getLogger(__name__)

_CLEAR_VERIFICATION = {
    "email_verification_token_hash": None,
    "email_verification_expires_at": None,
}
_CLEAR_RESET = {
    "password_reset_token_hash": None,
    "password_reset_expires_at": None,
}


class AccountLifecycle:
    """Applies lifecycle transitions through the credential store.

    Every transition passes its derived fields (watermark, cleared token
    columns) explicitly. Token consumption goes through a :class:`TokenGuard`
    so the hash/expiry check and the state change are one atomic update.
    """

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        *,
        token_ttl_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._token_ttl = timedelta(seconds=token_ttl_seconds)
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def start_email_verification(self, account: Account) -> str:
        """Issue a fresh verification token, replacing any pending one, and return its plaintext."""
        token, token_hash = generate_opaque_token()
        self._apply(
            account,
            {
                "email_verification_token_hash": token_hash,
                "email_verification_expires_at": self._clock() + self._token_ttl,
            },
        )
        return token

    def set_email_verified(self, account: Account, token_hash: str) -> Account | None:
        guard = TokenGuard(
            hash_field="email_verification_token_hash",
            expiry_field="email_verification_expires_at",
            token_hash=token_hash,
            now=self._clock(),
        )
        return self._store.update_account_fields(
            account.account_id,
            {"email_verified": True, **_CLEAR_VERIFICATION},
            guard=guard,
        )

    def set_password_reset_token(self, account: Account) -> str:
        """Issue a fresh reset token, replacing any pending one, and return its plaintext."""
        token, token_hash = generate_opaque_token()
        self._apply(
            account,
            {
                "password_reset_token_hash": token_hash,
                "password_reset_expires_at": self._clock() + self._token_ttl,
            },
        )
        return token

    def set_reset_password(self, account: Account, token_hash: str, new_password: str) -> Account | None:
        now = self._clock()
        guard = TokenGuard(
            hash_field="password_reset_token_hash",
            expiry_field="password_reset_expires_at",
            token_hash=token_hash,
            now=now,
        )
        return self._store.update_account_fields(
            account.account_id,
            self._password_fields(new_password, now),
            guard=guard,
        )

    def update_password(self, account: Account, new_password: str) -> Account:
        return self._apply(account, self._password_fields(new_password, self._clock()))

    def deactivate(self, account: Account) -> Account:
        return self._apply(account, {"active": False})

    def is_token_fresh(self, account: Account, issued_at: float) -> bool:
        """Return ``False`` when the token predates the account's last password change."""
        return not account.changed_password_after(issued_at)

    def _password_fields(self, new_password: str, now: datetime) -> dict[str, Any]:
        return {
            "password_hash": self._hasher.hash(new_password),
            "password_changed_at": now,
            **_CLEAR_RESET,
        }

    def _apply(self, account: Account, fields: dict[str, Any]) -> Account:
        updated = self._store.update_account_fields(account.account_id, fields)
        if updated is None:
            logger.error("account %s vanished during update of %s", account.account_id, sorted(fields))
            raise PersistenceError("account update did not match any record")
        return updated
