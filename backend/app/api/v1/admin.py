"""Admin routes - security event log and audit trail"""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.audit import AuditLog
from app.models.security import SecurityLog
from app.schemas.audit import AuditLogResponse, SecurityLogResponse
from app.api.deps import require_permissions

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_permissions("audit:read"))])


def _load_json(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Undecodable JSON in log row: %.80s", raw)
        return {"raw": raw}


@router.get("/security-logs", response_model=List[SecurityLogResponse])
def list_security_logs(
    limit: int = Query(100, ge=1, le=500),
    event: Optional[str] = None,
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
):
    """List recent security events, newest first."""
    query = db.query(SecurityLog).order_by(SecurityLog.created_at.desc(), SecurityLog.id.desc())
    if event:
        query = query.filter(SecurityLog.event == event)
    if user_id:
        query = query.filter(SecurityLog.user_id == user_id)
    return [
        SecurityLogResponse(
            id=row.id,
            user_id=row.user_id,
            event=row.event,
            email=row.email,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            success=row.success,
            error_message=row.error_message,
            metadata=_load_json(row.metadata_json) or {},
            created_at=row.created_at,
        )
        for row in query.limit(limit).all()
    ]


@router.get("/audit-logs", response_model=List[AuditLogResponse])
def list_audit_logs(
    limit: int = Query(100, ge=1, le=500),
    entity: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List recent audit trail entries."""
    query = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if entity:
        query = query.filter(AuditLog.entity == entity)
    return [
        AuditLogResponse(
            id=row.id,
            entity=row.entity,
            entity_id=row.entity_id,
            action=row.action,
            actor_user_id=row.actor_user_id,
            actor_role=row.actor_role,
            before=_load_json(row.before_json),
            after=_load_json(row.after_json),
            ip_address=row.ip_address,
            created_at=row.created_at,
        )
        for row in query.limit(limit).all()
    ]
