"""Account-related DTOs shared across services."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr


class AccountProfile(BaseModel):
    """Public projection of an account, safe to hand to clients and token claims."""

    id: str
    email: EmailStr
    name: str
    role: str = "user"
    photo: str | None = None
    email_verified: bool = False
