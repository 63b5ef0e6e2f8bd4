"""Role and permission models for role-based access control"""

import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Role(Base):
    """Named bundle of permissions; every user has exactly one role"""

    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Join rows keep insertion order; permission claims follow it
    role_permissions = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        order_by="RolePermission.id",
    )
    users = relationship("User", back_populates="role")

    def __repr__(self):
        return f"<Role(id='{self.id}', name='{self.name}')>"

    @property
    def permission_keys(self):
        return [rp.permission.key for rp in self.role_permissions]


class Permission(Base):
    """Atomic capability identified by a stable key such as 'products:write'"""

    __tablename__ = "permissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    key = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(255))
    module = Column(String(50), nullable=False, index=True)

    role_permissions = relationship("RolePermission", back_populates="permission")

    def __repr__(self):
        return f"<Permission(key='{self.key}')>"


class RolePermission(Base):
    """Plain many-to-many join between roles and permissions"""

    __tablename__ = "role_permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    permission_id = Column(String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)

    role = relationship("Role", back_populates="role_permissions")
    permission = relationship("Permission", back_populates="role_permissions")

    __table_args__ = (
        Index("idx_role_permissions_role", "role_id"),
    )
