"""API dependencies - authentication and authorization"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.config import AuthConfig, settings
from app.core.database import get_db
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import TokenCodec
from app.services.auth_service import AuthService
from app.services.permissions import Principal, has_any_role, missing_permissions

# HTTP Bearer token scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


@lru_cache()
def get_auth_config() -> AuthConfig:
    """Auth configuration, validated once per process"""
    return settings.auth_config()


def get_token_codec(config: AuthConfig = Depends(get_auth_config)) -> TokenCodec:
    return TokenCodec(config)


def get_auth_service(
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
) -> AuthService:
    return AuthService(db, config)


@dataclass(frozen=True)
class ClientInfo:
    ip_address: Optional[str]
    user_agent: Optional[str]


def get_client_info(request: Request) -> ClientInfo:
    """Client IP and user agent, used only for the security log"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return ClientInfo(ip_address=ip, user_agent=request.headers.get("User-Agent"))


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    codec: TokenCodec = Depends(get_token_codec),
) -> Principal:
    """
    Resolve the caller from a Bearer access token

    Verification is signature and expiry only; the store is not consulted.

    Raises:
        AuthenticationError: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = codec.decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    return Principal.from_claims(payload)


def require_permissions(*permissions: str):
    """
    Dependency factory: caller must hold every listed permission

    Usage:
        @router.get("/", dependencies=[Depends(require_permissions("products:read"))])
    """
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        missing = missing_permissions(principal, permissions)
        if missing:
            raise AuthorizationError(details={"missing": missing})
        return principal

    return _check


def require_roles(*roles: str):
    """Dependency factory: caller's role must be one of the listed roles"""
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not has_any_role(principal, roles):
            raise AuthorizationError("Role not permitted", details={"required": list(roles)})
        return principal

    return _check
