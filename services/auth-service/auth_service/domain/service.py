"""Auth service orchestrating the credential store, lifecycle transitions, tokens and notifications."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from prometheus_client import Counter

from .account import Account, normalize_email
from .contracts import ChangePasswordInput, LoginInput, NewAccount, OAuthIdentity, SignupInput
from .errors import DuplicateEmailError, InternalError, NotificationError, PersistenceError
from .lifecycle import AccountLifecycle
from .ports import CredentialStore, Notifier
from .results import AuthErrorKind, AuthResult
from ..config import Settings
from ..security.passwords import PasswordHasher
from ..security.tokens import AccessClaims, TokenCodec, hash_opaque_token

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTH_EVENTS = Counter(
    "auth_events_total",
    "Auth use-case outcomes.",
    ["event", "outcome"],
)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_VERIFICATION_TOKEN = "Your verification token is invalid or has expired."
INVALID_RESET_TOKEN = "Your reset token is invalid or has expired."
INVALID_REFRESH_TOKEN = "Your refresh token is invalid or has expired."
INVALID_ACCESS_TOKEN = "Your access token is invalid or has expired."
ACCOUNT_UNAVAILABLE = "The account you are trying to access is no longer available"
STALE_ACCESS_TOKEN = "User recently changed password! Please log in again."
WRONG_PASSWORD = "The provided password is wrong"
FORGOT_PASSWORD_SENT = "Please check your email for the password reset link."


class AuthService:
    """Use-case layer for signup, login, token refresh and password flows.

    All collaborators are injected so tests can substitute in-memory fakes.
    Expected failures come back as :class:`AuthResult` error variants; only
    storage faults escape as :class:`InternalError`.
    """

    def __init__(
        self,
        store: CredentialStore,
        codec: TokenCodec,
        notifier: Notifier,
        hasher: PasswordHasher,
        *,
        settings: Settings,
        lifecycle: AccountLifecycle | None = None,
    ) -> None:
        self._store = store
        self._codec = codec
        self._notifier = notifier
        self._hasher = hasher
        self._resend_on_login = settings.resend_verification_on_login
        self._lifecycle = lifecycle or AccountLifecycle(
            store, hasher, token_ttl_seconds=settings.opaque_token_ttl_seconds
        )

    def signup(self, payload: SignupInput) -> AuthResult:
        """Register a password account and start its email verification cycle.

        Parameters
        ----------
        payload:
            Name, email and plaintext password of the new account.

        Returns
        -------
        AuthResult
            A 201 success, or a 409 conflict when the email is already taken
            (including by a deactivated account).

        Raises
        ------
        InternalError
            When the account cannot be persisted.
        NotificationError
            When the verification email cannot be sent.
        """
        email = normalize_email(payload.email)
        if self._store.find_by_email(email, include_inactive=True) is not None:
            return self._conflict()

        try:
            account = self._store.create_account(
                NewAccount(
                    email=email,
                    name=payload.name,
                    password_hash=self._hasher.hash(payload.password),
                    photo=payload.photo,
                    password_changed_at=self._lifecycle.now(),
                )
            )
        except DuplicateEmailError:
            return self._conflict()
        except PersistenceError as exc:
            AUTH_EVENTS.labels("signup", "error").inc()
            raise InternalError("Failed to create your account. Please try again later.") from exc

        logger.info("created account %s", account.account_id)
        self._audit(account_id=account.account_id, event_type="account.created")
        self._initiate_email_verification(account)
        AUTH_EVENTS.labels("signup", "success").inc()
        return AuthResult.success(
            201,
            message="Account created successfully. Please check your email to verify your account.",
        )

    def verify_email(self, token: str) -> AuthResult:
        token_hash = hash_opaque_token(token)
        account = self._store.find_by_verification_token_hash(token_hash, self._lifecycle.now())
        verified = (
            self._run_storage(lambda: self._lifecycle.set_email_verified(account, token_hash))
            if account
            else None
        )
        if verified is None:
            AUTH_EVENTS.labels("verify_email", "rejected").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, INVALID_VERIFICATION_TOKEN)

        self._audit(account_id=verified.account_id, event_type="email.verified")
        AUTH_EVENTS.labels("verify_email", "success").inc()
        return AuthResult.success(message="Your email has been successfully verified.")

    def login(self, payload: LoginInput) -> AuthResult:
        """Authenticate with email and password.

        Parameters
        ----------
        payload:
            Email and plaintext password supplied by the caller.

        Returns
        -------
        AuthResult
            Access and refresh tokens plus the profile on success. Unknown
            emails, password-less accounts and wrong passwords all yield the
            same 401 result. Unverified accounts get an error-shaped 403; when
            ``resend_verification_on_login`` is enabled a new verification
            cycle is started as well.
        """
        account = self._store.find_by_email(normalize_email(payload.email))
        if (
            account is None
            or not account.has_password
            or not self._hasher.verify(payload.password, account.password_hash)
        ):
            if account is not None:
                self._audit(account_id=account.account_id, event_type="login.failed")
            AUTH_EVENTS.labels("login", "rejected").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, INVALID_CREDENTIALS)

        if not account.email_verified:
            if self._resend_on_login:
                self._initiate_email_verification(account)
            AUTH_EVENTS.labels("login", "unverified").inc()
            return AuthResult.failure(
                AuthErrorKind.forbidden,
                "Your email is not verified, please check your email for the verification link.",
            )

        self._audit(account_id=account.account_id, event_type="login.succeeded")
        AUTH_EVENTS.labels("login", "success").inc()
        return self._token_result(account)

    def refresh_token(self, token: str) -> AuthResult:
        """Mint a new access token from a valid refresh token.

        Parameters
        ----------
        token:
            Refresh token previously returned by :meth:`login`.

        Returns
        -------
        AuthResult
            A success carrying only ``access_token``; the refresh token is not
            rotated. Invalid, expired or access-typed tokens, deactivated
            accounts and tokens older than the password-change watermark all
            yield 401.
        """
        claims = self._codec.verify_refresh_token(token)
        if claims is None:
            AUTH_EVENTS.labels("refresh", "rejected").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, INVALID_REFRESH_TOKEN)

        account = self._store.find_by_id(claims.account_id)
        if account is None:
            AUTH_EVENTS.labels("refresh", "rejected").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, ACCOUNT_UNAVAILABLE)
        if not self._lifecycle.is_token_fresh(account, claims.issued_at):
            AUTH_EVENTS.labels("refresh", "stale").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, INVALID_REFRESH_TOKEN)

        self._audit(account_id=account.account_id, event_type="token.refreshed")
        AUTH_EVENTS.labels("refresh", "success").inc()
        return AuthResult.success(access_token=self._issue_access_token(account))

    def forgot_password(self, email: str) -> AuthResult:
        """Start a reset cycle; the response does not reveal whether the email exists."""
        response = AuthResult.success(message=FORGOT_PASSWORD_SENT)
        account = self._store.find_by_email(normalize_email(email))
        if account is None:
            logger.info("password reset requested for unknown email")
            AUTH_EVENTS.labels("forgot_password", "unknown").inc()
            return response

        if not account.has_password:
            AUTH_EVENTS.labels("forgot_password", "oauth_only").inc()
            return AuthResult.failure(
                AuthErrorKind.bad_request,
                "Password reset is not available for accounts that sign in with an external "
                "provider. Please use your provider's account recovery process.",
            )

        token = self._run_storage(lambda: self._lifecycle.set_password_reset_token(account))
        try:
            self._notifier.send_password_reset_email(account.name, account.email, token)
        except NotificationError as exc:
            logger.error("password reset email for account %s failed: %s", account.account_id, exc)
            AUTH_EVENTS.labels("forgot_password", "notify_failed").inc()
            return response

        self._audit(account_id=account.account_id, event_type="password.reset_requested")
        AUTH_EVENTS.labels("forgot_password", "success").inc()
        return response

    def reset_password(self, token: str, new_password: str) -> AuthResult:
        """Consume a reset token and set a new password.

        The token is single-use: the guarded update clears it, so a replay or a
        concurrent second use gets 401. Tokens issued before the reset stop
        authenticating.
        """
        token_hash = hash_opaque_token(token)
        account = self._store.find_by_reset_token_hash(token_hash, self._lifecycle.now())
        updated = (
            self._run_storage(lambda: self._lifecycle.set_reset_password(account, token_hash, new_password))
            if account
            else None
        )
        if updated is None:
            AUTH_EVENTS.labels("reset_password", "rejected").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, INVALID_RESET_TOKEN)

        self._audit(account_id=updated.account_id, event_type="password.reset")
        AUTH_EVENTS.labels("reset_password", "success").inc()
        return AuthResult.success(
            message="Your password has been reset successfully, Please login again."
        )

    def change_password(self, account: Account, payload: ChangePasswordInput) -> AuthResult:
        """Replace the password of an authenticated account after checking the old one."""
        current = self._store.find_by_id(account.account_id)
        if current is None or not self._hasher.verify(payload.old_password, current.password_hash):
            AUTH_EVENTS.labels("change_password", "rejected").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, WRONG_PASSWORD)

        self._run_storage(lambda: self._lifecycle.update_password(current, payload.new_password))
        self._audit(account_id=current.account_id, event_type="password.changed")
        AUTH_EVENTS.labels("change_password", "success").inc()
        return AuthResult.success(message="Your password has been updated successfully.")

    def handle_oauth_callback(self, account: Account) -> AuthResult:
        """Issue tokens for an account already resolved by the identity provider."""
        self._audit(account_id=account.account_id, event_type="login.oauth")
        AUTH_EVENTS.labels("oauth_callback", "success").inc()
        return self._token_result(account)

    def oauth_login(self, identity: OAuthIdentity) -> AuthResult:
        """Resolve a provider identity to an account and issue a login-shaped result.

        A soft-deleted account with the same email is reported as unavailable
        rather than re-provisioned.
        """
        account = self.resolve_oauth_identity(identity)
        if account is None:
            AUTH_EVENTS.labels("oauth_callback", "rejected").inc()
            return AuthResult.failure(AuthErrorKind.unauthorized, ACCOUNT_UNAVAILABLE)
        return self.handle_oauth_callback(account)

    def resolve_oauth_identity(self, identity: OAuthIdentity) -> Account | None:
        """Find or provision the password-less account for a provider identity.

        Parameters
        ----------
        identity:
            Profile already verified by the external provider.

        Returns
        -------
        Account | None
            The active account for the email, a newly created one, or ``None``
            when the email belongs to a deactivated account.
        """
        email = normalize_email(identity.email)
        account = self._store.find_by_email(email, include_inactive=True)
        if account is not None:
            return account if account.active else None
        try:
            account = self._store.create_account(
                NewAccount(
                    email=email,
                    name=identity.name,
                    password_hash=None,
                    photo=identity.photo,
                    email_verified=True,
                )
            )
        except DuplicateEmailError:
            existing = self._store.find_by_email(email, include_inactive=True)
            return existing if existing is not None and existing.active else None
        except PersistenceError as exc:
            raise InternalError("Failed to create your account. Please try again later.") from exc
        logger.info("provisioned %s account %s", identity.provider, account.account_id)
        self._audit(
            account_id=account.account_id,
            event_type="account.created",
            metadata={"provider": identity.provider},
        )
        return account

    def authenticate(self, access_token: str) -> AuthResult:
        """Resolve the account behind an access token for a protected call.

        Tokens issued before the account's ``password_changed_at`` watermark
        are rejected.
        """
        claims = self._codec.verify_access_token(access_token)
        if claims is None:
            return AuthResult.failure(AuthErrorKind.unauthorized, INVALID_ACCESS_TOKEN)

        account = self._store.find_by_id(claims.account_id)
        if account is None:
            return AuthResult.failure(
                AuthErrorKind.unauthorized, "The user belonging to this token does no longer exist."
            )
        if not self._lifecycle.is_token_fresh(account, claims.issued_at):
            return AuthResult.failure(AuthErrorKind.unauthorized, STALE_ACCESS_TOKEN)
        return AuthResult.success(data=account.to_profile(), account=account)

    def get_profile(self, account: Account) -> AuthResult:
        return AuthResult.success(data=account.to_profile())

    def deactivate(self, account: Account) -> AuthResult:
        """Soft-delete the account; it disappears from every authentication lookup."""
        self._run_storage(lambda: self._lifecycle.deactivate(account))
        self._audit(account_id=account.account_id, event_type="account.deactivated")
        AUTH_EVENTS.labels("deactivate", "success").inc()
        return AuthResult.success(204)

    def _initiate_email_verification(self, account: Account) -> None:
        token = self._run_storage(lambda: self._lifecycle.start_email_verification(account))
        self._notifier.send_verification_email(account.name, account.email, token)

    def _issue_access_token(self, account: Account) -> str:
        return self._codec.issue_access_token(
            AccessClaims(
                account_id=account.account_id,
                email=account.email,
                email_verified=account.email_verified,
                name=account.name,
                role=account.role,
                photo=account.photo,
            )
        )

    def _token_result(self, account: Account) -> AuthResult:
        return AuthResult.success(
            access_token=self._issue_access_token(account),
            refresh_token=self._codec.issue_refresh_token(account.account_id),
            data=account.to_profile(),
        )

    def _conflict(self) -> AuthResult:
        AUTH_EVENTS.labels("signup", "conflict").inc()
        return AuthResult.failure(
            AuthErrorKind.conflict,
            "This email is already registered. Please use a different email or log in.",
        )

    def _audit(
        self,
        *,
        account_id: str | None,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append to the audit trail; a failed write is logged and never fails the use case."""
        try:
            self._store.write_audit_event(account_id=account_id, event_type=event_type, metadata=metadata)
        except PersistenceError as exc:
            logger.error("audit event %s for account %s was not recorded: %s", event_type, account_id, exc)

    @staticmethod
    def _run_storage(operation: Callable[[], T]) -> T:
        """Run a store-backed operation, turning persistence faults into :class:`InternalError`."""
        try:
            return operation()
        except PersistenceError as exc:
            raise InternalError("The account could not be updated. Please try again later.") from exc
