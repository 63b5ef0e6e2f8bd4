"""User model"""

import enum
import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class UserStatus(str, enum.Enum):
    """Account status"""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class User(Base):
    """User model for authentication and authorization"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    status = Column(String(20), default=UserStatus.ACTIVE.value, nullable=False)
    role_id = Column(String(36), ForeignKey("roles.id"), nullable=False)
    last_login_at = Column(DateTime(timezone=True))
    password_reset_token = Column(String(64))
    password_reset_expires = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    role = relationship("Role", back_populates="users")

    __table_args__ = (
        Index("idx_users_email", "email"),
        Index("idx_users_reset_token", "password_reset_token"),
        CheckConstraint(
            "status IN ('ACTIVE', 'INACTIVE', 'SUSPENDED')",
            name="chk_user_status"
        ),
        CheckConstraint(
            "(password_reset_token IS NULL) = (password_reset_expires IS NULL)",
            name="chk_reset_token_pair"
        ),
    )

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}', status='{self.status}')>"
