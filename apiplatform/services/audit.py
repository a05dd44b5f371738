# ABOUTME: Audit trail for administrative actions on API keys
# ABOUTME: Writes audit_logs rows; failures are logged and never reach the caller

from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from apiplatform.models.database import AuditLog

log = structlog.get_logger()


def record_audit_event(
    db: Session,
    action: str,
    resource: str,
    resource_id: Optional[str],
    actor: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    success: bool = True,
) -> None:
    """Persist one audit entry in its own commit."""
    try:
        db.add(AuditLog(
            actor=actor or "system",
            action=action,
            resource=resource,
            resource_id=resource_id,
            success=success,
            details=details,
        ))
        db.commit()
        log.info("audit_event", action=action, resource=resource, resource_id=resource_id, actor=actor or "system")
    except Exception as e:
        log.error("audit_event_failed", action=action, resource_id=resource_id, error=str(e))
        db.rollback()
