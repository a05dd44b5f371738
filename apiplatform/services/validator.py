# ABOUTME: Per-request API key validation
# ABOUTME: Resolves the key, checks status, expiry, scope and rate limits, returning a typed result

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import structlog
from sqlalchemy.orm import Session

from apiplatform.models.database import APIKey
from apiplatform.services.hashing import KeyHasher
from apiplatform.services.rate_limiter import RateLimiter, RateLimitStatus
from apiplatform.services.scopes import DEFAULT_SCOPE_RULES, ScopeRule, required_scope
from apiplatform.utils.clock import utcnow

log = structlog.get_logger()


class KeyValidationError(str, Enum):
    INVALID_KEY = "InvalidKey"
    INACTIVE_KEY = "InactiveKey"
    EXPIRED_KEY = "ExpiredKey"
    INSUFFICIENT_SCOPE = "InsufficientScope"
    RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
    VALIDATION_FAILED = "ValidationFailed"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]

    @property
    def code(self) -> str:
        return _RESPONSE_CODE[self]


_HTTP_STATUS = {
    KeyValidationError.INVALID_KEY: 401,
    KeyValidationError.INACTIVE_KEY: 401,
    KeyValidationError.EXPIRED_KEY: 401,
    KeyValidationError.INSUFFICIENT_SCOPE: 403,
    KeyValidationError.RATE_LIMIT_EXCEEDED: 429,
    KeyValidationError.VALIDATION_FAILED: 500,
}

_RESPONSE_CODE = {
    KeyValidationError.INVALID_KEY: "INVALID_API_KEY",
    KeyValidationError.INACTIVE_KEY: "INACTIVE_API_KEY",
    KeyValidationError.EXPIRED_KEY: "EXPIRED_API_KEY",
    KeyValidationError.INSUFFICIENT_SCOPE: "INSUFFICIENT_SCOPE",
    KeyValidationError.RATE_LIMIT_EXCEEDED: "RATE_LIMITED",
    KeyValidationError.VALIDATION_FAILED: "VALIDATION_FAILED",
}

_MESSAGES = {
    KeyValidationError.INVALID_KEY: "API key is missing or invalid",
    KeyValidationError.INACTIVE_KEY: "API key is not active",
    KeyValidationError.EXPIRED_KEY: "API key has expired",
    KeyValidationError.INSUFFICIENT_SCOPE: "Insufficient permissions",
    KeyValidationError.RATE_LIMIT_EXCEEDED: "Rate limit exceeded",
    KeyValidationError.VALIDATION_FAILED: "Validation failed",
}


@dataclass
class ValidationResult:
    valid: bool
    api_key: Optional[APIKey] = None
    rate_limit_status: Optional[RateLimitStatus] = None
    error: Optional[KeyValidationError] = None
    required_scope: Optional[str] = None

    @property
    def message(self) -> Optional[str]:
        return _MESSAGES[self.error] if self.error else None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "api_key_id": self.api_key.id if self.api_key is not None else None,
            "owner_id": self.api_key.owner_id if self.api_key is not None else None,
            "scopes": list(self.api_key.scopes) if self.api_key is not None else None,
            "required_scope": self.required_scope,
            "rate_limit": self.rate_limit_status.to_dict() if self.rate_limit_status else None,
        }


def _fail(error: KeyValidationError, api_key: Optional[APIKey] = None, **kwargs) -> ValidationResult:
    return ValidationResult(valid=False, api_key=api_key, error=error, **kwargs)


def validate_key(
    db: Session,
    raw_key: str,
    endpoint: str,
    method: str,
    *,
    limiter: RateLimiter,
    hasher: KeyHasher,
    scope_rules: Iterable[ScopeRule] = DEFAULT_SCOPE_RULES,
    key_prefix: str = "209w_",
) -> ValidationResult:
    """
    Decide whether `raw_key` may call `method endpoint`.

    Checks run in order: lookup, status, expiry, scope, rate limit. Failures
    are returned, never raised. The key record is attached to failed results
    once it has been resolved so callers can attribute the attempt. The only
    write is `last_used_at` on success.
    """
    try:
        key_hash = hasher.hash(raw_key.removeprefix(key_prefix))
        api_key = db.query(APIKey).filter(APIKey.key_hash == key_hash).first()

        if api_key is None:
            return _fail(KeyValidationError.INVALID_KEY)

        if api_key.status != "active":
            return _fail(KeyValidationError.INACTIVE_KEY, api_key)

        now = utcnow()
        if api_key.expires_at is not None and api_key.expires_at < now:
            return _fail(KeyValidationError.EXPIRED_KEY, api_key)

        scope = required_scope(method, endpoint, scope_rules)
        if scope is not None and scope not in (api_key.scopes or []):
            return _fail(KeyValidationError.INSUFFICIENT_SCOPE, api_key, required_scope=scope)

        status = limiter.check(api_key.id, api_key.rate_limits)
        if not status.allowed:
            return _fail(KeyValidationError.RATE_LIMIT_EXCEEDED, api_key, rate_limit_status=status,
                         required_scope=scope)

        api_key.last_used_at = now
        db.commit()

        return ValidationResult(valid=True, api_key=api_key, rate_limit_status=status, required_scope=scope)

    except Exception as e:
        log.error("api_key_validation_error", endpoint=endpoint, method=method, error=str(e))
        db.rollback()
        return _fail(KeyValidationError.VALIDATION_FAILED)
