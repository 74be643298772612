from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
import uuid

import pytest

from auth_service.config import Settings
from auth_service.domain.account import Account, normalize_email
from auth_service.domain.contracts import NewAccount, TokenGuard
from auth_service.domain.errors import DuplicateEmailError, NotificationError, PersistenceError
from auth_service.domain.lifecycle import AccountLifecycle
from auth_service.domain.service import AuthService
from auth_service.security.passwords import PasswordHasher
from auth_service.security.tokens import TokenCodec


class FakeCredentialStore:
    """In-memory credential store mimicking the Postgres-backed behaviours."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.audit_log: list[tuple[str | None, str, dict]] = []
        self.fail_writes = False
        self.fail_audit = False

    def find_by_email(self, email: str, *, include_inactive: bool = False) -> Account | None:
        email = normalize_email(email)
        for account in self.accounts.values():
            if account.email == email and (include_inactive or account.active):
                return replace(account)
        return None

    def find_by_id(self, account_id: str) -> Account | None:
        account = self.accounts.get(account_id)
        if account is None or not account.active:
            return None
        return replace(account)

    def find_by_verification_token_hash(self, token_hash: str, not_expired_before: datetime):
        return self._find_by_token(
            "email_verification_token_hash", "email_verification_expires_at", token_hash, not_expired_before
        )

    def find_by_reset_token_hash(self, token_hash: str, not_expired_before: datetime):
        return self._find_by_token(
            "password_reset_token_hash", "password_reset_expires_at", token_hash, not_expired_before
        )

    def create_account(self, payload: NewAccount) -> Account:
        if self.fail_writes:
            raise PersistenceError("database unavailable")
        email = normalize_email(payload.email)
        if any(account.email == email for account in self.accounts.values()):
            raise DuplicateEmailError(email)
        account = Account(
            account_id=str(uuid.uuid4()),
            email=email,
            name=payload.name,
            password_hash=payload.password_hash,
            role=payload.role,
            photo=payload.photo,
            email_verified=payload.email_verified,
            password_changed_at=payload.password_changed_at,
            created_at=datetime.now(timezone.utc),
        )
        self.accounts[account.account_id] = account
        return replace(account)

    def update_account_fields(self, account_id: str, fields, *, guard: TokenGuard | None = None):
        if self.fail_writes:
            raise PersistenceError("database unavailable")
        account = self.accounts.get(account_id)
        if account is None:
            return None
        if guard is not None:
            expires_at = getattr(account, guard.expiry_field)
            if (
                not account.active
                or getattr(account, guard.hash_field) != guard.token_hash
                or expires_at is None
                or expires_at < guard.now
            ):
                return None
        updated = replace(account, **fields)
        self.accounts[account_id] = updated
        return replace(updated)

    def write_audit_event(self, *, account_id: str | None, event_type: str, metadata: dict | None = None) -> None:
        if self.fail_audit:
            raise PersistenceError("audit table unavailable")
        self.audit_log.append((account_id, event_type, metadata or {}))

    def events(self) -> list[str]:
        return [event_type for _, event_type, _ in self.audit_log]

    def _find_by_token(self, hash_field, expiry_field, token_hash, not_expired_before):
        for account in self.accounts.values():
            expires_at = getattr(account, expiry_field)
            if (
                account.active
                and getattr(account, hash_field) == token_hash
                and expires_at is not None
                and expires_at >= not_expired_before
            ):
                return replace(account)
        return None


class RecordingNotifier:
    """Notifier double that keeps every plaintext token it was asked to send."""

    def __init__(self) -> None:
        self.verification: list[tuple[str, str, str]] = []
        self.reset: list[tuple[str, str, str]] = []
        self.fail = False

    def send_verification_email(self, name: str, email: str, token: str) -> None:
        if self.fail:
            raise NotificationError("smtp unavailable")
        self.verification.append((name, email, token))

    def send_password_reset_email(self, name: str, email: str, token: str) -> None:
        if self.fail:
            raise NotificationError("smtp unavailable")
        self.reset.append((name, email, token))

    @property
    def last_verification_token(self) -> str:
        return self.verification[-1][2]

    @property
    def last_reset_token(self) -> str:
        return self.reset[-1][2]


class MutableClock:
    """Clock that follows real time plus an adjustable offset."""

    def __init__(self) -> None:
        self.offset = timedelta()

    def __call__(self) -> datetime:
        return datetime.now(timezone.utc) + self.offset

    def advance(self, **kwargs) -> None:
        self.offset += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        access_token_secret="test-access-secret",
        refresh_token_secret="test-refresh-secret",
        access_token_ttl_seconds=900,
        refresh_token_ttl_seconds=3600,
        opaque_token_ttl_seconds=86400,
        bcrypt_rounds=4,
        resend_verification_on_login=True,
    )


@pytest.fixture
def store() -> FakeCredentialStore:
    return FakeCredentialStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def hasher(settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def codec(settings, clock) -> TokenCodec:
    return TokenCodec(settings, clock=clock)


@pytest.fixture
def lifecycle(store, hasher, settings, clock) -> AccountLifecycle:
    return AccountLifecycle(
        store, hasher, token_ttl_seconds=settings.opaque_token_ttl_seconds, clock=clock
    )


@pytest.fixture
def service(store, codec, notifier, hasher, settings, lifecycle) -> AuthService:
    return AuthService(store, codec, notifier, hasher, settings=settings, lifecycle=lifecycle)
