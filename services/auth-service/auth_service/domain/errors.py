"""Exceptions for faults that are not part of a use case's expected outcomes."""

from __future__ import annotations


class AuthServiceError(Exception):
    """Base class for hard failures raised by the auth service."""


class InternalError(AuthServiceError):
    """Unexpected fault surfaced to the caller as a 500-equivalent."""


class PersistenceError(AuthServiceError):
    """The credential store failed to read or write an account."""


class DuplicateEmailError(PersistenceError):
    """An account with the same normalised email already exists."""

    def __init__(self, email: str) -> None:
        super().__init__("email already registered")
        self.email = email


class NotificationError(AuthServiceError):
    """The notifier could not deliver a message."""
