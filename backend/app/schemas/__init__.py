"""Pydantic schemas for API validation"""

from app.schemas.user import UserResponse, RoleResponse
from app.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    TokenPair,
    AuthResponse,
    MessageResponse,
)
from app.schemas.response import ErrorResponse, HealthResponse
from app.schemas.audit import SecurityLogResponse, AuditLogResponse

__all__ = [
    "UserResponse", "RoleResponse",
    "RegisterRequest", "LoginRequest", "RefreshTokenRequest", "ChangePasswordRequest",
    "ForgotPasswordRequest", "ResetPasswordRequest", "TokenPair", "AuthResponse", "MessageResponse",
    "SecurityLogResponse", "AuditLogResponse",
    "ErrorResponse", "HealthResponse",
]
