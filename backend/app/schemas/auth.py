"""Request/response schemas for auth endpoints"""

from typing import Annotated, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, Field

from app.core.security import MAX_PASSWORD_BYTES, MIN_PASSWORD_LENGTH, password_fits_hasher
from app.schemas.user import CamelModel, UserResponse


def _check_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(str(exc)) from exc
    return value


# Syntax-checked, but kept byte-for-byte: emails are exact-match keys
Email = Annotated[str, AfterValidator(_check_email)]


def _check_password(value: str) -> str:
    if not password_fits_hasher(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


# Passwords that will be hashed must fit the bcrypt input limit
NewPassword = Annotated[
    str,
    Field(min_length=MIN_PASSWORD_LENGTH),
    AfterValidator(_check_password),
]


class RegisterRequest(CamelModel):
    """Self-registration payload"""
    email: Email
    password: NewPassword
    name: str = Field(..., min_length=1, max_length=100)
    role_id: Optional[str] = None


class LoginRequest(CamelModel):
    """Credentials for login"""
    email: Email
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: NewPassword


class ForgotPasswordRequest(CamelModel):
    email: Email


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: NewPassword


class TokenPair(CamelModel):
    """Access/refresh bearer tokens; expires_in is the configured access TTL string"""
    access_token: str
    refresh_token: str
    expires_in: str


class AuthResponse(CamelModel):
    """Returned by register and login"""
    user: UserResponse
    tokens: TokenPair
    message: str


class MessageResponse(CamelModel):
    message: str
