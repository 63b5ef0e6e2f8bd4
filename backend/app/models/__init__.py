"""Database models"""

from app.models.role import Role, Permission, RolePermission
from app.models.user import User, UserStatus
from app.models.security import SecurityLog, SecurityEvent
from app.models.audit import AuditLog

__all__ = [
    "Role", "Permission", "RolePermission",
    "User", "UserStatus",
    "SecurityLog", "SecurityEvent",
    "AuditLog",
]
