"""Password hashing backed by bcrypt."""

from __future__ import annotations

import logging

import bcrypt

logger = logging.getLogger(__name__)


class PasswordHasher:
    """Bcrypt password hashing utility."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialise with the bcrypt cost factor."""
        self.rounds = rounds

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str | None) -> bool:
        """Return ``True`` when ``password`` matches ``password_hash``.

        A missing or malformed stored hash never matches.
        """
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError as exc:
            logger.error("password verification failed: %s", exc)
            return False
