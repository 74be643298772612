"""Uniform result envelope returned by every auth use case."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from schemas import AccountProfile

from .account import Account


class AuthErrorKind(str, Enum):
    conflict = "conflict"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    bad_request = "bad_request"


_STATUS_CODES = {
    AuthErrorKind.conflict: 409,
    AuthErrorKind.unauthorized: 401,
    AuthErrorKind.forbidden: 403,
    AuthErrorKind.bad_request: 400,
}


@dataclass(slots=True)
class AuthResult:
    """Success or expected-failure outcome of a use case.

    Callers branch on :attr:`ok` / :attr:`error`; hard faults are raised as
    exceptions instead of being encoded here.
    """

    status: str
    status_code: int
    message: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    data: AccountProfile | None = None
    error: AuthErrorKind | None = None
    account: Account | None = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls,
        status_code: int = 200,
        *,
        message: str | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        data: AccountProfile | None = None,
        account: Account | None = None,
    ) -> "AuthResult":
        return cls(
            status="success",
            status_code=status_code,
            message=message,
            access_token=access_token,
            refresh_token=refresh_token,
            data=data,
            account=account,
        )

    @classmethod
    def failure(cls, kind: AuthErrorKind, message: str) -> "AuthResult":
        return cls(status="error", status_code=_STATUS_CODES[kind], message=message, error=kind)

    def to_payload(self) -> dict[str, Any]:
        """Serialise the envelope, omitting fields that were not set."""
        payload: dict[str, Any] = {"status": self.status, "statusCode": self.status_code}
        if self.message is not None:
            payload["message"] = self.message
        if self.access_token is not None:
            payload["accessToken"] = self.access_token
        if self.refresh_token is not None:
            payload["refreshToken"] = self.refresh_token
        if self.data is not None:
            payload["data"] = self.data.model_dump()
        return payload
