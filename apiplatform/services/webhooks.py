# ABOUTME: Webhook endpoint registration
# ABOUTME: Stores target URL, events, shared secret, and default retry policy; delivery is not performed here

import secrets
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from apiplatform.models.database import WebhookEndpoint
from apiplatform.services.hashing import generate_secret

log = structlog.get_logger()

DEFAULT_RETRY_POLICY = {
    "max_retries": 3,
    "backoff_multiplier": 2.0,
    "max_backoff_seconds": 300,
}


def register_webhook(
    db: Session,
    owner_id: str,
    url: str,
    events: List[str],
    secret: Optional[str] = None,
) -> WebhookEndpoint:
    """
    Register an outbound webhook endpoint.

    A 32-character secret is generated when none is supplied.

    Raises:
        ValueError: no events given
    """
    events = list(dict.fromkeys(e for e in events if e))
    if not events:
        raise ValueError("At least one event is required")

    webhook = WebhookEndpoint(
        id=f"whk_{secrets.token_hex(12)}",
        owner_id=owner_id,
        url=url,
        events=events,
        secret=secret or generate_secret(),
        status="active",
        failure_count=0,
        **DEFAULT_RETRY_POLICY,
    )
    db.add(webhook)
    db.commit()
    db.refresh(webhook)

    log.info("webhook_registered", webhook_id=webhook.id, owner_id=owner_id, events=events)
    return webhook


def list_webhooks(db: Session, owner_id: str) -> List[WebhookEndpoint]:
    return (
        db.query(WebhookEndpoint)
        .filter(WebhookEndpoint.owner_id == owner_id)
        .order_by(WebhookEndpoint.created_at.desc())
        .all()
    )
