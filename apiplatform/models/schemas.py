# ABOUTME: Request and response models for the HTTP API
# ABOUTME: Pydantic schemas for keys, validation, usage reports, and webhooks

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl

from apiplatform.models.database import APIKey, WebhookEndpoint


class CreateAPIKeyRequest(BaseModel):
    """Request body for issuing a new API key."""
    owner_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    scopes: List[str] = []
    tier: str = "free"
    expires_in_days: Optional[float] = Field(default=None, ge=-36500, le=36500, allow_inf_nan=False)
    metadata: Dict[str, Any] = {}


class UpdateAPIKeyStatusRequest(BaseModel):
    status: Literal["active", "suspended", "revoked"]


class RateLimitInfo(BaseModel):
    requests_per_minute: int
    requests_per_hour: int
    requests_per_day: int
    burst_limit: int
    concurrent_requests: int


class APIKeySummary(BaseModel):
    """Stored view of a key. Never includes the secret."""
    id: str
    name: str
    key_prefix: str
    owner_id: str
    tier: str
    scopes: List[str]
    rate_limit: RateLimitInfo
    status: str
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime
    metadata: Dict[str, Any] = {}

    @classmethod
    def from_model(cls, api_key: APIKey) -> "APIKeySummary":
        return cls(
            id=api_key.id,
            name=api_key.name,
            key_prefix=api_key.key_prefix,
            owner_id=api_key.owner_id,
            tier=api_key.tier,
            scopes=list(api_key.scopes or []),
            rate_limit=RateLimitInfo(
                requests_per_minute=api_key.rate_limit_per_minute,
                requests_per_hour=api_key.rate_limit_per_hour,
                requests_per_day=api_key.rate_limit_per_day,
                burst_limit=api_key.burst_limit,
                concurrent_requests=api_key.concurrent_requests,
            ),
            status=api_key.status,
            expires_at=api_key.expires_at,
            last_used_at=api_key.last_used_at,
            created_at=api_key.created_at,
            metadata=dict(api_key.extra or {}),
        )


class CreateAPIKeyResponse(APIKeySummary):
    """Response containing the newly created API key, shown only once."""
    api_key: str


class ValidateRequest(BaseModel):
    api_key: str
    endpoint: str
    method: str


class UsageReport(BaseModel):
    """Usage fact reported by a gateway that validated a request itself."""
    api_key_id: str
    endpoint: str
    method: str
    status_code: int = Field(ge=100, le=599)
    response_time_ms: int = Field(default=0, ge=0)
    request_size: int = Field(default=0, ge=0)
    response_size: int = Field(default=0, ge=0)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    region: Optional[str] = None
    timestamp: Optional[datetime] = None


class CreateWebhookRequest(BaseModel):
    url: HttpUrl
    events: List[str] = Field(min_length=1)
    secret: Optional[str] = Field(default=None, min_length=16)


class RetryPolicy(BaseModel):
    max_retries: int
    backoff_multiplier: float
    max_backoff_seconds: int


class WebhookResponse(BaseModel):
    id: str
    url: str
    events: List[str]
    secret: str
    status: str
    retry_policy: RetryPolicy
    failure_count: int
    created_at: datetime

    @classmethod
    def from_model(cls, webhook: WebhookEndpoint, mask_secret: bool = False) -> "WebhookResponse":
        secret = webhook.secret
        if mask_secret:
            secret = "*" * 8 + secret[-4:]
        return cls(
            id=webhook.id,
            url=webhook.url,
            events=list(webhook.events or []),
            secret=secret,
            status=webhook.status,
            retry_policy=RetryPolicy(**webhook.retry_policy),
            failure_count=webhook.failure_count,
            created_at=webhook.created_at,
        )
