# ABOUTME: Best-effort recording of per-request usage facts
# ABOUTME: Persistence failures are logged and swallowed so telemetry never fails a request

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from apiplatform.models.database import APIKey, APIUsage
from apiplatform.utils.clock import utcnow

log = structlog.get_logger()


@dataclass
class UsageRecord:
    api_key_id: str
    endpoint: str
    method: str
    status_code: int
    response_time_ms: int = 0
    request_size: int = 0
    response_size: int = 0
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    region: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)


def record_usage(db: Session, usage: UsageRecord) -> None:
    """
    Append one usage row.

    Rows for unknown keys are dropped so every api_usage row references an
    issued key. Rate-limit counters are not touched here; the limiter counts
    requests when it admits them.
    """
    try:
        if db.get(APIKey, usage.api_key_id) is None:
            log.warning("usage_for_unknown_key_dropped", api_key_id=usage.api_key_id, endpoint=usage.endpoint)
            return

        db.add(APIUsage(
            api_key_id=usage.api_key_id,
            endpoint=usage.endpoint,
            method=usage.method.upper(),
            status_code=usage.status_code,
            response_time_ms=usage.response_time_ms,
            request_size=usage.request_size,
            response_size=usage.response_size,
            ip_address=usage.ip_address,
            user_agent=usage.user_agent,
            region=usage.region,
            timestamp=usage.timestamp,
        ))
        db.commit()
    except Exception as e:
        log.error("usage_record_failed", api_key_id=usage.api_key_id, endpoint=usage.endpoint, error=str(e))
        db.rollback()
