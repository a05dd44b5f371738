# ABOUTME: API key issuance and lifecycle management
# ABOUTME: Generates secrets, stores only their hash, snapshots tier limits, and audits changes

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from apiplatform.models.database import APIKey, KEY_STATUSES
from apiplatform.services.audit import record_audit_event
from apiplatform.services.hashing import KeyHasher, Sha256KeyHasher, generate_secret
from apiplatform.services.tiers import TIERS, RateLimitConfig, get_tier
from apiplatform.utils.clock import utcnow

log = structlog.get_logger()


class KeyNotFoundError(LookupError):
    pass


class InvalidStatusTransitionError(ValueError):
    pass


class InvalidExpiryError(ValueError):
    pass


@dataclass
class IssuedKey:
    """A freshly issued key. `plaintext` is never stored and cannot be recovered later."""
    api_key: APIKey
    plaintext: str


def issue_key(
    db: Session,
    owner_id: str,
    name: str,
    scopes: List[str],
    tier: str,
    expires_in_days: Optional[float] = None,
    metadata: Optional[Dict[str, Any]] = None,
    actor: Optional[str] = None,
    hasher: Optional[KeyHasher] = None,
    key_prefix: str = "209w_",
    tiers: Dict[str, RateLimitConfig] = TIERS,
) -> IssuedKey:
    """
    Issue a new API key for `owner_id`.

    The plaintext is `<key_prefix><32 alphanumerics>`; only the hash of the
    alphanumeric part is persisted. The tier's limits are copied onto the key,
    so later changes to the tier table do not affect it.

    Raises:
        InvalidTierError: if `tier` is not in the tier table. Nothing is written.
        InvalidExpiryError: if `expires_in_days` is not a finite, representable offset.
    """
    config = get_tier(tier, tiers)
    hasher = hasher or Sha256KeyHasher()

    expires_at = None
    if expires_in_days is not None:
        try:
            expires_at = utcnow() + timedelta(days=expires_in_days)
        except (OverflowError, ValueError):
            raise InvalidExpiryError(f"Invalid expires_in_days: {expires_in_days}") from None

    secret = generate_secret()

    api_key = APIKey(
        id=f"key_{secrets.token_hex(12)}",
        name=name,
        key_hash=hasher.hash(secret),
        key_prefix=f"{key_prefix}{secret[:4]}",
        owner_id=owner_id,
        tier=config.tier,
        scopes=list(dict.fromkeys(scopes)),
        rate_limit_per_minute=config.requests_per_minute,
        rate_limit_per_hour=config.requests_per_hour,
        rate_limit_per_day=config.requests_per_day,
        burst_limit=config.burst_limit,
        concurrent_requests=config.concurrent_requests,
        status="active",
        expires_at=expires_at,
        extra=metadata or {},
    )
    db.add(api_key)
    db.commit()
    db.refresh(api_key)

    record_audit_event(
        db,
        action="api_key_created",
        resource="api_key",
        resource_id=api_key.id,
        actor=actor or owner_id,
        details={"name": name, "scopes": api_key.scopes, "tier": config.tier},
    )

    return IssuedKey(api_key=api_key, plaintext=f"{key_prefix}{secret}")


def get_key(db: Session, key_id: str) -> APIKey:
    api_key = db.get(APIKey, key_id)
    if api_key is None:
        raise KeyNotFoundError(f"API key not found: {key_id}")
    return api_key


def list_keys(db: Session, owner_id: Optional[str] = None) -> List[APIKey]:
    query = db.query(APIKey)
    if owner_id:
        query = query.filter(APIKey.owner_id == owner_id)
    return query.order_by(APIKey.created_at.desc()).all()


def set_key_status(db: Session, key_id: str, status: str, actor: Optional[str] = None) -> APIKey:
    """
    Move a key between active and suspended, or revoke it.

    Revocation is terminal. Keys are never deleted.

    Raises:
        KeyNotFoundError: unknown key id
        InvalidStatusTransitionError: unknown status or leaving `revoked`
    """
    if status not in KEY_STATUSES:
        raise InvalidStatusTransitionError(f"Unknown status: {status}. Valid statuses: {', '.join(KEY_STATUSES)}")

    api_key = get_key(db, key_id)
    previous = api_key.status
    if previous == "revoked" and status != "revoked":
        raise InvalidStatusTransitionError(f"API key {key_id} is revoked and cannot become {status}")

    if previous != status:
        api_key.status = status
        db.commit()
        db.refresh(api_key)
        record_audit_event(
            db,
            action="api_key_status_changed",
            resource="api_key",
            resource_id=key_id,
            actor=actor,
            details={"from": previous, "to": status},
        )
        log.info("api_key_status_changed", api_key_id=key_id, previous=previous, status=status)

    return api_key
