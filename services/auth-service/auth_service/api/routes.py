"""HTTP route definitions for the auth service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from ..domain.account import Account
from ..domain.contracts import ChangePasswordInput, LoginInput, SignupInput
from ..domain.results import AuthErrorKind, AuthResult
from ..domain.service import AuthService

router = APIRouter(prefix="/v1/auth", tags=["auth"])

NOT_LOGGED_IN = "You are not logged in! please login to get access."


class AuthenticationFailed(Exception):
    """Raised by the bearer dependency; carries the failure result to render."""

    def __init__(self, result: AuthResult) -> None:
        super().__init__(result.message)
        self.result = result


async def authentication_failed_handler(request: Request, exc: AuthenticationFailed) -> JSONResponse:
    """Render bearer failures with the same envelope as every other auth error."""
    return JSONResponse(status_code=exc.result.status_code, content=exc.result.to_payload())


class SignupRequest(BaseModel):
    """Payload accepted when registering a password account."""

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    photo: str | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class RefreshTokenRequest(BaseModel):
    """Request body for exchanging a refresh token for a new access token."""

    refresh_token: str = Field(..., alias="refreshToken")


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    # bcrypt only considers the first 72 bytes of a password
    password: str = Field(..., min_length=8, max_length=72)


class UpdatePasswordRequest(BaseModel):
    old_password: str = Field(..., alias="oldPassword", min_length=1, max_length=72)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=72)


def get_service(request: Request) -> AuthService:
    """Resolve the `AuthService` stored on the FastAPI application state."""
    service: AuthService = request.app.state.auth_service
    return service


def get_current_account(
    authorization: str | None = Header(default=None),
    service: AuthService = Depends(get_service),
) -> Account:
    """Authenticate the bearer token and return the account it belongs to."""
    if not authorization or not authorization.startswith("Bearer"):
        raise AuthenticationFailed(AuthResult.failure(AuthErrorKind.unauthorized, NOT_LOGGED_IN))
    _, _, token = authorization.partition(" ")
    result = service.authenticate(token.strip())
    if not result.ok or result.account is None:
        raise AuthenticationFailed(result)
    return result.account


def _respond(result: AuthResult) -> Response:
    if result.status_code == status.HTTP_204_NO_CONTENT:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(status_code=result.status_code, content=result.to_payload())


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, service: AuthService = Depends(get_service)) -> Response:
    result = service.signup(
        SignupInput(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            photo=payload.photo,
        )
    )
    return _respond(result)


@router.post("/login")
def login(payload: LoginRequest, service: AuthService = Depends(get_service)) -> Response:
    return _respond(service.login(LoginInput(email=payload.email, password=payload.password)))


@router.post("/refresh-token")
def refresh_token(
    payload: RefreshTokenRequest, service: AuthService = Depends(get_service)
) -> Response:
    return _respond(service.refresh_token(payload.refresh_token))


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest, service: AuthService = Depends(get_service)
) -> Response:
    """Start a password reset; the response is identical whether or not the email exists."""
    return _respond(service.forgot_password(payload.email))


@router.patch("/reset-password/{token}")
def reset_password(
    token: str, payload: ResetPasswordRequest, service: AuthService = Depends(get_service)
) -> Response:
    return _respond(service.reset_password(token, payload.password))


@router.get("/verify-email/{token}")
def verify_email(token: str, service: AuthService = Depends(get_service)) -> Response:
    return _respond(service.verify_email(token))


@router.patch("/update-password")
def update_password(
    payload: UpdatePasswordRequest,
    account: Account = Depends(get_current_account),
    service: AuthService = Depends(get_service),
) -> Response:
    result = service.change_password(
        account,
        ChangePasswordInput(old_password=payload.old_password, new_password=payload.new_password),
    )
    return _respond(result)


@router.get("/me")
def me(
    account: Account = Depends(get_current_account),
    service: AuthService = Depends(get_service),
) -> Response:
    return _respond(service.get_profile(account))


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_me(
    account: Account = Depends(get_current_account),
    service: AuthService = Depends(get_service),
) -> Response:
    """Deactivate the caller's account (soft delete)."""
    return _respond(service.deactivate(account))
