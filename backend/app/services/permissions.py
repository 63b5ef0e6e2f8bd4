"""Permission resolution consumed by business modules"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as described by verified access-token claims"""

    user_id: str
    email: str
    role: str
    permissions: Tuple[str, ...] = ()

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Principal":
        return cls(
            user_id=str(claims["sub"]),
            email=claims.get("email", ""),
            role=claims.get("role", ""),
            permissions=tuple(claims.get("permissions") or ()),
        )


def authorize(principal: Principal, permission: str) -> bool:
    """Return True if the principal's role grants the permission key"""
    return permission in principal.permissions


def has_all_permissions(principal: Principal, permissions: Iterable[str]) -> bool:
    return all(authorize(principal, key) for key in permissions)


def missing_permissions(principal: Principal, permissions: Iterable[str]) -> list:
    return [key for key in permissions if not authorize(principal, key)]


def has_any_role(principal: Principal, roles: Iterable[str]) -> bool:
    return principal.role in set(roles)
