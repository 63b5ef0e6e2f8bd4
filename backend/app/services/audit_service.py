"""Audit trail service for entity changes."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.audit import AuditLog


def _dump(data: Optional[Dict[str, Any]]) -> Optional[str]:
    if data is None:
        return None
    return json.dumps(data, ensure_ascii=False, default=str)


class AuditService:
    """Persist immutable before/after audit entries."""

    @staticmethod
    def log(
        db: Session,
        *,
        entity: str,
        entity_id: str,
        action: str,
        actor_user_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Append an audit entry and commit the session

        Committing here also commits whatever change the entry describes,
        so the change and its audit record land together.
        """
        entry = AuditLog(
            entity=entity,
            entity_id=entity_id,
            action=action,
            actor_user_id=actor_user_id,
            actor_role=actor_role,
            before_json=_dump(before),
            after_json=_dump(after),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry


audit_service = AuditService()
