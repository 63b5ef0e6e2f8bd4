"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class ConfigurationError(RuntimeError):
    """Deployment configuration is missing or invalid (raised at startup)"""


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password; the two are indistinguishable"""
    def __init__(self):
        super().__init__("Invalid credentials")


class InactiveAccountError(AuthenticationError):
    """Account status is not ACTIVE"""
    def __init__(self):
        super().__init__("Account is inactive")


class InvalidRefreshTokenError(AuthenticationError):
    """Refresh token is malformed, expired or its user is unusable"""
    def __init__(self):
        super().__init__("Invalid refresh token")


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=403, details=details)


# Resource Errors
class ConflictError(BaseAPIException):
    """Resource state conflicts with the request"""
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class DuplicateEmailError(ConflictError):
    """Email already registered"""
    def __init__(self):
        super().__init__("User with this email already exists")


# Request Errors
class BadRequestError(BaseAPIException):
    """Request is well-formed but cannot be honoured, or failed validation"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)
