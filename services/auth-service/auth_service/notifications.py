"""Notifier implementations for verification and password reset links."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Development notifier that logs the link a user would receive by email."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    def verification_link(self, token: str) -> str:
        return f"{self._base_url}/v1/auth/verify-email/{token}"

    def reset_link(self, token: str) -> str:
        return f"{self._base_url}/v1/auth/reset-password/{token}"

    def send_verification_email(self, name: str, email: str, token: str) -> None:
        logger.info("verification email for %s <%s>: %s", name, email, self.verification_link(token))

    def send_password_reset_email(self, name: str, email: str, token: str) -> None:
        logger.info("password reset email for %s <%s>: %s", name, email, self.reset_link(token))
