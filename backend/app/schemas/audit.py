"""Security log and audit trail response schemas."""

from datetime import datetime
from typing import Optional, Dict, Any

from app.schemas.user import CamelModel


class SecurityLogResponse(CamelModel):
    id: int
    user_id: Optional[str]
    event: str
    email: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    success: bool
    error_message: Optional[str]
    metadata: Dict[str, Any] = {}
    created_at: Optional[datetime]


class AuditLogResponse(CamelModel):
    id: int
    entity: str
    entity_id: str
    action: str
    actor_user_id: Optional[str]
    actor_role: Optional[str]
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    ip_address: Optional[str]
    created_at: Optional[datetime]
