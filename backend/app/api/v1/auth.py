"""Authentication routes"""

from fastapi import APIRouter, Depends, status

from app.config import settings
from app.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPair,
)
from app.schemas.user import UserResponse
from app.services.auth_service import AuthService
from app.services.permissions import Principal
from app.services.rate_limiter import rate_limiter
from app.api.deps import ClientInfo, get_auth_service, get_client_info, get_current_principal

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    client: ClientInfo = Depends(get_client_info),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Register endpoint - create an account and sign in

    Args:
        body: Email, password, name and optional role id

    Returns:
        User and token pair
    """
    return auth.register(
        email=body.email,
        password=body.password,
        name=body.name,
        role_id=body.role_id,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )


@router.post("/login", response_model=AuthResponse, status_code=status.HTTP_200_OK)
def login(
    body: LoginRequest,
    client: ClientInfo = Depends(get_client_info),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Login endpoint - authenticate user and return JWT tokens

    Args:
        body: Email and password

    Returns:
        User and token pair
    """
    rate_limiter.enforce(
        f"login:{client.ip_address}:{body.email.lower()}",
        settings.LOGIN_RATE_LIMIT_PER_MINUTE,
        settings.LOGIN_RATE_LIMIT_PER_HOUR,
        "Too many login attempts. Please try again later.",
    )
    return auth.login(body.email, body.password, client.ip_address, client.user_agent)


@router.post("/refresh", response_model=TokenPair, status_code=status.HTTP_200_OK)
def refresh_token(
    body: RefreshTokenRequest,
    client: ClientInfo = Depends(get_client_info),
    auth: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token for a new token pair"""
    rate_limiter.enforce(
        f"refresh:{client.ip_address}",
        settings.RATE_LIMIT_PER_MINUTE,
        settings.RATE_LIMIT_PER_HOUR,
        "Too many refresh attempts. Slow down.",
    )
    return auth.refresh_token(body.refresh_token, client.ip_address, client.user_agent)


@router.post("/logout", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def logout(
    principal: Principal = Depends(get_current_principal),
    client: ClientInfo = Depends(get_client_info),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Logout endpoint - records the event; tokens stay valid until they expire

    Returns:
        Success message
    """
    return auth.logout(principal.user_id, client.ip_address, client.user_agent)


@router.put("/change-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    client: ClientInfo = Depends(get_client_info),
    auth: AuthService = Depends(get_auth_service),
):
    """Change the caller's password"""
    return auth.change_password(
        principal.user_id,
        body.current_password,
        body.new_password,
        client.ip_address,
        client.user_agent,
    )


@router.post("/forgot-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def forgot_password(
    body: ForgotPasswordRequest,
    client: ClientInfo = Depends(get_client_info),
    auth: AuthService = Depends(get_auth_service),
):
    """Request a password reset token; the response never reveals whether the email exists"""
    rate_limiter.enforce(
        f"forgot:{client.ip_address}",
        settings.LOGIN_RATE_LIMIT_PER_MINUTE,
        settings.LOGIN_RATE_LIMIT_PER_HOUR,
        "Too many password reset requests. Please try again later.",
    )
    return auth.forgot_password(body.email, client.ip_address, client.user_agent)


@router.post("/reset-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def reset_password(
    body: ResetPasswordRequest,
    client: ClientInfo = Depends(get_client_info),
    auth: AuthService = Depends(get_auth_service),
):
    """Set a new password using a reset token"""
    return auth.reset_password(body.token, body.new_password, client.ip_address, client.user_agent)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Get current user information

    Returns:
        User profile loaded fresh from the store
    """
    return auth.get_profile(principal.user_id)
