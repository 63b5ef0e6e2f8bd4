"""Default roles and permissions for a fresh database"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from sqlalchemy.orm import Session

from app.models.role import Permission, Role, RolePermission

logger = logging.getLogger(__name__)

MODULES = ("products", "inventory", "orders", "suppliers", "customers", "users", "audit")

# (key, module, name)
DEFAULT_PERMISSIONS: List[Tuple[str, str, str]] = [
    (f"{module}:{verb}", module, f"{verb.capitalize()} {module}")
    for module in MODULES
    for verb in ("read", "write")
] + [("users:manage", "users", "Manage users and roles")]

DEFAULT_ROLES: Dict[str, Tuple[str, List[str]]] = {
    "Admin": (
        "Full access",
        [key for key, _, _ in DEFAULT_PERMISSIONS],
    ),
    "Manager": (
        "Day-to-day operations and reporting",
        [key for key, _, _ in DEFAULT_PERMISSIONS if key != "users:manage"],
    ),
    "Subordinate": (
        "Read-only access to business data",
        [
            key for key, _, _ in DEFAULT_PERMISSIONS
            if key.endswith(":read") and key not in ("audit:read", "users:read")
        ],
    ),
}


def seed_rbac(db: Session) -> Dict[str, int]:
    """
    Create missing default permissions, roles and role grants

    Existing rows are left untouched, so the seed can run on every startup.

    Returns:
        Counts of created permissions, roles and grants
    """
    created = {"permissions": 0, "roles": 0, "grants": 0}

    permissions = {p.key: p for p in db.query(Permission).all()}
    for key, module, name in DEFAULT_PERMISSIONS:
        if key not in permissions:
            permission = Permission(key=key, module=module, name=name)
            db.add(permission)
            permissions[key] = permission
            created["permissions"] += 1
    db.flush()

    for role_name, (description, keys) in DEFAULT_ROLES.items():
        role = db.query(Role).filter(Role.name == role_name).first()
        if role is None:
            role = Role(name=role_name, description=description)
            db.add(role)
            db.flush()
            created["roles"] += 1
        granted = {rp.permission_id for rp in role.role_permissions}
        for key in keys:
            permission = permissions[key]
            if permission.id not in granted:
                db.add(RolePermission(role_id=role.id, permission_id=permission.id))
                granted.add(permission.id)
                created["grants"] += 1

    db.commit()
    logger.info(
        "RBAC seed: %d permissions, %d roles, %d grants created",
        created["permissions"], created["roles"], created["grants"],
    )
    return created
