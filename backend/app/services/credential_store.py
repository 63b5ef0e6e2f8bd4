"""Credential store - the only query surface the auth core uses"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import DuplicateEmailError
from app.models.role import Role, RolePermission
from app.models.user import User, UserStatus

logger = logging.getLogger(__name__)


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class RoleInfo:
    id: str
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class UserAccount:
    """User joined with its role and the role's permission keys in join order"""

    id: str
    email: str
    name: str
    password_hash: str
    status: str
    role: RoleInfo
    permissions: Tuple[str, ...] = ()
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    password_reset_token: Optional[str] = field(default=None, repr=False)
    password_reset_expires: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    @classmethod
    def from_orm(cls, user: User) -> "UserAccount":
        role = user.role
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            password_hash=user.password_hash,
            status=user.status,
            role=RoleInfo(id=role.id, name=role.name, description=role.description),
            permissions=tuple(rp.permission.key for rp in role.role_permissions),
            last_login_at=_as_utc(user.last_login_at),
            created_at=_as_utc(user.created_at),
            updated_at=_as_utc(user.updated_at),
            password_reset_token=user.password_reset_token,
            password_reset_expires=_as_utc(user.password_reset_expires),
        )


class CredentialStore:
    """Lookup/update interface over users, roles and permissions"""

    def __init__(self, db: Session):
        self.db = db

    def _user_query(self):
        return self.db.query(User).options(
            joinedload(User.role)
            .selectinload(Role.role_permissions)
            .joinedload(RolePermission.permission)
        )

    def _load(self, user: Optional[User]) -> Optional[UserAccount]:
        return UserAccount.from_orm(user) if user else None

    def find_by_email(self, email: str) -> Optional[UserAccount]:
        """Exact, case-sensitive email match"""
        return self._load(self._user_query().filter(User.email == email).first())

    def find_by_id(self, user_id: str) -> Optional[UserAccount]:
        return self._load(self._user_query().filter(User.id == user_id).first())

    def find_by_valid_reset_token(self, token: str, now: datetime) -> Optional[UserAccount]:
        """Return the user holding exactly this reset token with expiry strictly after now"""
        user = (
            self._user_query()
            .filter(
                User.password_reset_token == token,
                User.password_reset_expires > now,
            )
            .first()
        )
        return self._load(user)

    def email_exists(self, email: str) -> bool:
        return self.db.query(User.id).filter(User.email == email).first() is not None

    def role_exists(self, role_id: str) -> bool:
        return self.db.query(Role.id).filter(Role.id == role_id).first() is not None

    def get_default_role_id(self, role_name: str) -> Optional[str]:
        row = self.db.query(Role.id).filter(Role.name == role_name).first()
        return row[0] if row else None

    def create_user(
        self,
        *,
        email: str,
        name: str,
        password_hash: str,
        role_id: str,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> str:
        """
        Stage a new user and flush it so the unique email constraint is checked

        The caller commits. A uniqueness violation rolls back and surfaces
        as DuplicateEmailError, so concurrent registrations cannot leave a
        partial row behind.

        Returns:
            str: New user id
        """
        user = User(
            email=email,
            name=name,
            password_hash=password_hash,
            role_id=role_id,
            status=status.value,
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            if self.email_exists(email):
                raise DuplicateEmailError() from exc
            raise
        logger.info(f"Created user: {email} (role: {role_id})")
        return user.id

    def touch_last_login(self, user_id: str, when: datetime) -> None:
        self.db.query(User).filter(User.id == user_id).update(
            {User.last_login_at: when}, synchronize_session=False
        )
        self.db.commit()

    def update_password_hash(self, user_id: str, password_hash: str) -> None:
        self.db.query(User).filter(User.id == user_id).update(
            {User.password_hash: password_hash}, synchronize_session=False
        )
        self.db.commit()

    def consume_reset_token(self, user_id: str, token: str, password_hash: str, now: datetime) -> bool:
        """
        Set a new hash only if the user still holds this unexpired token

        The token check and the clear happen in one UPDATE, so a token that
        was overwritten or already used cannot reset the password.

        Returns:
            bool: True if exactly one row was updated
        """
        updated = (
            self.db.query(User)
            .filter(
                User.id == user_id,
                User.password_reset_token == token,
                User.password_reset_expires > now,
            )
            .update(
                {
                    User.password_hash: password_hash,
                    User.password_reset_token: None,
                    User.password_reset_expires: None,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def set_reset_token(self, user_id: str, token: str, expires: datetime) -> None:
        self.db.query(User).filter(User.id == user_id).update(
            {User.password_reset_token: token, User.password_reset_expires: expires},
            synchronize_session=False,
        )
        self.db.commit()

    def list_users(self, limit: int = 100, offset: int = 0) -> List[UserAccount]:
        users = (
            self._user_query()
            .order_by(User.created_at, User.email)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [UserAccount.from_orm(u) for u in users]
