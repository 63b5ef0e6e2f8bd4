"""Application configuration management"""

import json
import re
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

from app.core.exceptions import ConfigurationError

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a compact duration string such as "15m" or "7d"

    Args:
        value: Duration with optional unit suffix (s, m, h, d); bare
            integers are seconds

    Returns:
        timedelta: Parsed duration

    Raises:
        ConfigurationError: If the string is malformed or not positive
    """
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    amount = int(match.group(1))
    if amount <= 0:
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return timedelta(**{_DURATION_UNITS[match.group(2)]: amount})


@dataclass(frozen=True)
class AuthConfig:
    """Immutable settings consumed by the authentication core."""

    jwt_secret: str
    jwt_refresh_secret: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    access_expires_in: str = "15m"
    refresh_expires_in: str = "7d"
    algorithm: str = "HS256"
    issuer: str = "inventory-system"
    audience: str = "inventory-users"
    bcrypt_rounds: int = 12
    password_reset_ttl: timedelta = timedelta(minutes=15)
    default_role_name: str = "Subordinate"

    def __post_init__(self) -> None:
        if not self.jwt_secret or not self.jwt_refresh_secret:
            raise ConfigurationError("JWT secrets are not configured properly")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ConfigurationError("BCRYPT_ROUNDS must be between 4 and 31")


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Inventory Auth Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "inventory_db"
    POSTGRES_USER: str = "inventory"
    POSTGRES_PASSWORD: str = "inventory"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Tokens
    JWT_SECRET: str = ""
    JWT_REFRESH_SECRET: str = ""
    JWT_EXPIRES_IN: str = "15m"
    JWT_REFRESH_EXPIRES_IN: str = "7d"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "inventory-system"
    JWT_AUDIENCE: str = "inventory-users"

    # Passwords
    BCRYPT_ROUNDS: int = 12
    PASSWORD_RESET_EXPIRE_MINUTES: int = 15

    # RBAC
    DEFAULT_ROLE_NAME: str = "Subordinate"
    SEED_RBAC_ON_STARTUP: bool = False

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 100
    RATE_LIMIT_PER_HOUR: int = 1000
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 10
    LOGIN_RATE_LIMIT_PER_HOUR: int = 50

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def auth_config(self) -> AuthConfig:
        """
        Build the immutable configuration injected into the auth core

        Raises:
            ConfigurationError: If secrets are missing or a TTL is malformed
        """
        return AuthConfig(
            jwt_secret=self.JWT_SECRET,
            jwt_refresh_secret=self.JWT_REFRESH_SECRET,
            access_ttl=parse_duration(self.JWT_EXPIRES_IN),
            refresh_ttl=parse_duration(self.JWT_REFRESH_EXPIRES_IN),
            access_expires_in=self.JWT_EXPIRES_IN,
            refresh_expires_in=self.JWT_REFRESH_EXPIRES_IN,
            algorithm=self.JWT_ALGORITHM,
            issuer=self.JWT_ISSUER,
            audience=self.JWT_AUDIENCE,
            bcrypt_rounds=self.BCRYPT_ROUNDS,
            password_reset_ttl=timedelta(minutes=self.PASSWORD_RESET_EXPIRE_MINUTES),
            default_role_name=self.DEFAULT_ROLE_NAME,
        )

    def validate_security_settings(self) -> None:
        """
        Validate token secrets; stricter checks apply in production.

        Raises:
            ConfigurationError: If secrets are missing or insecure.
        """
        self.auth_config()

        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_secret_markers = {"change-me", "secret", "your-secret-key"}
        for name in ("JWT_SECRET", "JWT_REFRESH_SECRET"):
            value = getattr(self, name)
            if value in insecure_secret_markers or len(value) < 32:
                raise ConfigurationError(
                    f"Insecure {name} for production. Use a strong key (e.g. `openssl rand -hex 32`)."
                )
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ConfigurationError("JWT_SECRET and JWT_REFRESH_SECRET must differ")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
