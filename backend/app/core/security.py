"""Security primitives - password hashing and JWT signing/verification"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
import secrets

import bcrypt
from jose import JWTError, jwt

from app.config import AuthConfig

# bcrypt only considers the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8

REFRESH_TOKEN_TYPE = "refresh"


def password_fits_hasher(password: str) -> bool:
    """Return True if the password is accepted as hasher input without truncation"""
    return len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES


class PasswordHasher:
    """One-way salted bcrypt hashing with a configurable cost factor"""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt

        Args:
            password: Plain text password

        Returns:
            str: Hashed password

        Raises:
            ValueError: If the password exceeds the bcrypt input limit
        """
        if not password_fits_hasher(password):
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(rounds=self.rounds)
        ).decode("utf-8")

    def verify(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash

        Args:
            password: Plain text password
            hashed_password: Stored bcrypt hash

        Returns:
            bool: True if password matches; False on mismatch or malformed input
        """
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                hashed_password.encode("utf-8")
            )
        except (ValueError, TypeError):
            return False


class TokenCodec:
    """
    Sign and verify access/refresh JWTs.

    Access and refresh tokens use different secrets so that a leak of one
    key cannot be used to mint the other kind of token.
    """

    def __init__(self, config: AuthConfig):
        self.config = config

    def _encode(self, claims: Dict[str, Any], secret: str, ttl) -> str:
        now = datetime.now(timezone.utc)
        to_encode = dict(claims)
        to_encode.update({
            "iat": now,
            "exp": now + ttl,
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "jti": secrets.token_urlsafe(16),
        })
        return jwt.encode(to_encode, secret, algorithm=self.config.algorithm)

    def _decode(self, token: str, secret: str) -> Optional[Dict[str, Any]]:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )
        except JWTError:
            return None
        if not payload.get("sub"):
            return None
        return payload

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role: str,
        permissions: Iterable[str],
    ) -> str:
        """
        Create a signed access token

        Args:
            user_id: Subject id
            email: Subject email
            role: Role name
            permissions: Permission keys in role order, not deduplicated

        Returns:
            str: Encoded JWT
        """
        claims = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "permissions": list(permissions),
        }
        return self._encode(claims, self.config.jwt_secret, self.config.access_ttl)

    def create_refresh_token(self, user_id: str) -> str:
        """Create a signed refresh token carrying only the subject id"""
        claims = {"sub": str(user_id), "type": REFRESH_TOKEN_TYPE}
        return self._encode(claims, self.config.jwt_refresh_secret, self.config.refresh_ttl)

    def decode_access_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode and verify an access token

        Returns:
            Optional[Dict]: Claims, or None if the signature, expiry,
            issuer or audience check fails
        """
        payload = self._decode(token, self.config.jwt_secret)
        if payload is None or payload.get("type") == REFRESH_TOKEN_TYPE:
            return None
        return payload

    def decode_refresh_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Decode and verify a refresh token; None if invalid"""
        payload = self._decode(token, self.config.jwt_refresh_secret)
        if payload is None or payload.get("type") != REFRESH_TOKEN_TYPE:
            return None
        return payload
