"""Collaborator interfaces the auth domain depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol

from .account import Account
from .contracts import NewAccount, TokenGuard


class CredentialStore(Protocol):
    """Persistence boundary for account records.

    Lookups used for authentication only see active accounts unless stated
    otherwise. ``update_account_fields`` must apply a ``guard`` atomically with
    the field changes.
    """

    def find_by_email(self, email: str, *, include_inactive: bool = False) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def find_by_verification_token_hash(
        self, token_hash: str, not_expired_before: datetime
    ) -> Account | None: ...

    def find_by_reset_token_hash(
        self, token_hash: str, not_expired_before: datetime
    ) -> Account | None: ...

    def create_account(self, payload: NewAccount) -> Account: ...

    def update_account_fields(
        self,
        account_id: str,
        fields: Mapping[str, Any],
        *,
        guard: TokenGuard | None = None,
    ) -> Account | None: ...

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class Notifier(Protocol):
    """Outbound channel for verification and reset links.

    Implementations raise :class:`~auth_service.domain.errors.NotificationError`
    when delivery fails.
    """

    def send_verification_email(self, name: str, email: str, token: str) -> None: ...

    def send_password_reset_email(self, name: str, email: str, token: str) -> None: ...
