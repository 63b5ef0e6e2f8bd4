"""Best-effort security event log."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Union

from prometheus_client import Counter
from sqlalchemy.orm import Session

from app.models.security import SecurityEvent, SecurityLog

logger = logging.getLogger(__name__)

AUTH_EVENTS = Counter(
    "inventory_auth_events_total",
    "Authentication security events",
    ["event", "success"],
)


class SecurityLogService:
    """Append authentication events; a failing write never reaches the caller."""

    @staticmethod
    def log_event(
        db: Session,
        event: Union[SecurityEvent, str],
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[SecurityLog]:
        """
        Record a security event

        Args:
            db: Database session; must not hold uncommitted work of the caller
            event: Event kind
            error_message: Failure reason; its presence marks the event unsuccessful
            metadata: Extra structured data; defaults to {"error": error_message}
                for failures

        Returns:
            The stored entry, or None if the write failed
        """
        event_name = event.value if isinstance(event, SecurityEvent) else str(event)
        success = error_message is None
        if metadata is None and error_message is not None:
            metadata = {"error": error_message}

        AUTH_EVENTS.labels(event_name, str(success).lower()).inc()
        if success:
            logger.info("Security event %s user_id=%s email=%s ip=%s", event_name, user_id, email, ip_address)
        else:
            logger.warning(
                "Security event %s user_id=%s email=%s ip=%s reason=%s",
                event_name, user_id, email, ip_address, error_message,
            )

        try:
            entry = SecurityLog(
                user_id=user_id,
                event=event_name,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                success=success,
                error_message=error_message,
                metadata_json=json.dumps(metadata, ensure_ascii=False, default=str) if metadata else None,
            )
            db.add(entry)
            db.commit()
            return entry
        except Exception:
            logger.exception("Failed to log security event %s", event_name)
            db.rollback()
            return None


security_log_service = SecurityLogService()
