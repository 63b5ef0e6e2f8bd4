"""Auth service - registration, login, token refresh and password lifecycle"""

from __future__ import annotations

import dataclasses
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.config import AuthConfig
from app.core.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    DuplicateEmailError,
    InactiveAccountError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
)
from app.core.security import PasswordHasher, TokenCodec
from app.models.security import SecurityEvent
from app.schemas.auth import AuthResponse, MessageResponse, TokenPair
from app.schemas.user import UserResponse
from app.services.audit_service import AuditService, audit_service
from app.services.credential_store import CredentialStore, UserAccount
from app.services.security_log_service import SecurityLogService, security_log_service

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """
    Orchestrates credential checks, token issuance and password changes.

    Stateless between calls: every piece of state lives in the credential
    store, so one instance per request (per session) is enough. All methods
    take the client IP and user agent purely for the security log.
    """

    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        *,
        hasher: Optional[PasswordHasher] = None,
        codec: Optional[TokenCodec] = None,
        security_log: SecurityLogService = security_log_service,
        audit: AuditService = audit_service,
    ):
        self.db = db
        self.config = config
        self.store = CredentialStore(db)
        self.hasher = hasher or PasswordHasher(config.bcrypt_rounds)
        self.codec = codec or TokenCodec(config)
        self.security_log = security_log
        self.audit = audit

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        name: str,
        role_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthResponse:
        """
        Create an ACTIVE user and sign them in

        Args:
            email: Unique email (exact match)
            password: Plain password, already validated at the boundary
            name: Display name
            role_id: Role to assign; the default role when omitted

        Returns:
            AuthResponse: Sanitised user plus a fresh token pair

        Raises:
            DuplicateEmailError: If the email is already registered
            BadRequestError: If role_id does not exist
            ConfigurationError: If no default role is configured
        """
        try:
            if self.store.email_exists(email):
                raise DuplicateEmailError()

            if role_id is None:
                role_id = self._default_role_id()
            elif not self.store.role_exists(role_id):
                raise BadRequestError("Role not found")

            password_hash = self.hasher.hash(password)
            user_id = self.store.create_user(
                email=email,
                name=name,
                password_hash=password_hash,
                role_id=role_id,
            )
            account = self.store.find_by_id(user_id)

            # Commits the new user together with its audit record
            self.audit.log(
                self.db,
                entity="User",
                entity_id=user_id,
                action="CREATE",
                actor_user_id=user_id,
                actor_role=account.role.name,
                after={"email": email, "name": name, "roleId": role_id},
                ip_address=ip_address,
                user_agent=user_agent,
            )

            self._log_event(
                SecurityEvent.REGISTER_SUCCESS,
                user_id=user_id,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
            )

            return AuthResponse(
                user=self._format_user(account),
                tokens=self._issue_token_pair(account),
                message="Registration successful",
            )
        except Exception as exc:
            self.db.rollback()
            self._log_event(
                SecurityEvent.REGISTER_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                error_message=str(exc),
            )
            raise

    def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthResponse:
        """
        Authenticate with email and password

        Unknown email and wrong password produce the same external error;
        the security log keeps the real reason.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            InactiveAccountError: Account status is not ACTIVE
            AuthenticationError: "Login failed" for any unexpected error
        """
        try:
            account = self.store.find_by_email(email)

            if account is None:
                self._log_event(
                    SecurityEvent.LOGIN_FAILED,
                    email=email,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    error_message="User not found",
                )
                raise InvalidCredentialsError()

            if not account.is_active:
                self._log_event(
                    SecurityEvent.LOGIN_FAILED,
                    user_id=account.id,
                    email=email,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    error_message="Account inactive",
                )
                raise InactiveAccountError()

            if not self.hasher.verify(password, account.password_hash):
                self._log_event(
                    SecurityEvent.LOGIN_FAILED,
                    user_id=account.id,
                    email=email,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    error_message="Invalid password",
                )
                raise InvalidCredentialsError()

            now = _utcnow()
            self.store.touch_last_login(account.id, now)
            account = dataclasses.replace(account, last_login_at=now)

            self._log_event(
                SecurityEvent.LOGIN_SUCCESS,
                user_id=account.id,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
            )

            return AuthResponse(
                user=self._format_user(account),
                tokens=self._issue_token_pair(account),
                message="Login successful",
            )
        except AuthenticationError:
            raise
        except Exception as exc:
            logger.exception("Unexpected login error for %s", email)
            self.db.rollback()
            self._log_event(
                SecurityEvent.LOGIN_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                error_message=str(exc),
            )
            raise AuthenticationError("Login failed") from exc

    def refresh_token(
        self,
        refresh_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        """
        Mint a new token pair from a valid refresh token

        Role and permissions are re-read from the store so the new access
        token reflects the user's current role. Earlier refresh tokens stay
        valid until they expire; there is no rotation chain or revocation.

        Raises:
            InvalidRefreshTokenError: Bad signature/expiry, or user missing or inactive
        """
        payload = self.codec.decode_refresh_token(refresh_token)
        if payload is None:
            self._log_event(
                SecurityEvent.TOKEN_REFRESH_FAILED,
                ip_address=ip_address,
                user_agent=user_agent,
                error_message="Invalid or expired refresh token",
            )
            raise InvalidRefreshTokenError()

        account = self.store.find_by_id(payload["sub"])
        if account is None or not account.is_active:
            self._log_event(
                SecurityEvent.TOKEN_REFRESH_FAILED,
                user_id=account.id if account else None,
                email=account.email if account else None,
                ip_address=ip_address,
                user_agent=user_agent,
                error_message="User not found" if account is None else "Account inactive",
            )
            raise InvalidRefreshTokenError()

        tokens = self._issue_token_pair(account)
        self._log_event(
            SecurityEvent.TOKEN_REFRESH,
            user_id=account.id,
            email=account.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return tokens

    def logout(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> MessageResponse:
        """
        Record a logout; always reports success

        Tokens are stateless and are not invalidated server-side.
        """
        try:
            account = self.store.find_by_id(user_id)
            if account is not None:
                self._log_event(
                    SecurityEvent.LOGOUT,
                    user_id=user_id,
                    email=account.email,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            return MessageResponse(message="Logout successful")
        except Exception:
            logger.exception("Logout error for user_id=%s", user_id)
            self.db.rollback()
            return MessageResponse(message="Logout completed")

    def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> MessageResponse:
        """
        Change the password of an authenticated user

        Raises:
            AuthenticationError: User no longer exists
            BadRequestError: Current password is incorrect
        """
        account = self.store.find_by_id(user_id)
        if account is None:
            raise AuthenticationError("User not found")

        if not self.hasher.verify(current_password, account.password_hash):
            raise BadRequestError("Current password is incorrect")

        self.store.update_password_hash(account.id, self.hasher.hash(new_password))

        self._log_event(
            SecurityEvent.PASSWORD_CHANGE,
            user_id=account.id,
            email=account.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return MessageResponse(message="Password changed successfully")

    def forgot_password(
        self,
        email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> MessageResponse:
        """
        Issue a single-use reset token for the account, if it exists

        The response is identical whether or not the email is registered.
        Delivering the token to the user is not handled here.
        """
        account = self.store.find_by_email(email)
        if account is None:
            return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        token = secrets.token_urlsafe(32)
        expires = _utcnow() + self.config.password_reset_ttl
        self.store.set_reset_token(account.id, token, expires)

        self._log_event(
            SecurityEvent.PASSWORD_RESET_REQUEST,
            user_id=account.id,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    def reset_password(
        self,
        token: str,
        new_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> MessageResponse:
        """
        Consume a reset token and set a new password

        Raises:
            BadRequestError: No user holds this token, or it has expired
        """
        account = self.store.find_by_valid_reset_token(token, _utcnow())
        if account is None:
            raise BadRequestError("Invalid or expired reset token")

        consumed = self.store.consume_reset_token(
            account.id,
            token,
            self.hasher.hash(new_password),
            _utcnow(),
        )
        if not consumed:
            raise BadRequestError("Invalid or expired reset token")

        self._log_event(
            SecurityEvent.PASSWORD_RESET_SUCCESS,
            user_id=account.id,
            email=account.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return MessageResponse(message="Password reset successful")

    def validate_user(self, email: str, password: str) -> Optional[UserResponse]:
        """Return the sanitised user for valid credentials of an ACTIVE account, else None"""
        account = self.store.find_by_email(email)
        if account is None or not account.is_active:
            return None
        if not self.hasher.verify(password, account.password_hash):
            return None
        return self._format_user(account)

    def get_profile(self, user_id: str) -> UserResponse:
        """Current user profile, freshly loaded"""
        account = self.store.find_by_id(user_id)
        if account is None:
            raise AuthenticationError("User not found")
        return self._format_user(account)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_token_pair(self, account: UserAccount) -> TokenPair:
        access_token = self.codec.create_access_token(
            user_id=account.id,
            email=account.email,
            role=account.role.name,
            permissions=account.permissions,
        )
        refresh_token = self.codec.create_refresh_token(account.id)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.config.access_expires_in,
        )

    @staticmethod
    def _format_user(account: UserAccount) -> UserResponse:
        return UserResponse.model_validate(account)

    def _default_role_id(self) -> str:
        role_id = self.store.get_default_role_id(self.config.default_role_name)
        if role_id is None:
            raise ConfigurationError(f"Default role '{self.config.default_role_name}' not found")
        return role_id

    def _log_event(self, event: SecurityEvent, **kwargs) -> None:
        self.security_log.log_event(self.db, event, **kwargs)


def ensure_default_role(db: Session, config: AuthConfig) -> str:
    """
    Fail fast when the self-registration role is missing

    Raises:
        ConfigurationError: If no role carries the configured default name
    """
    role_id = CredentialStore(db).get_default_role_id(config.default_role_name)
    if role_id is None:
        raise ConfigurationError(f"Default role '{config.default_role_name}' not found")
    return role_id
