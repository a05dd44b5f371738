# ABOUTME: APIPlatform service object bundling key, limit, usage, analytics, and webhook operations
# ABOUTME: Constructed explicitly from settings and handed to routes; there is no global instance

from typing import Any, Dict, List, Optional

import redis
import structlog
from sqlalchemy.orm import Session

from apiplatform.config import Settings
from apiplatform.models.database import APIKey, WebhookEndpoint
from apiplatform.services import analytics, key_issuer, usage, validator, webhooks
from apiplatform.services.cache import AnalyticsCache
from apiplatform.services.hashing import KeyHasher, Sha256KeyHasher
from apiplatform.services.rate_limiter import (
    InMemoryRateCounterStore,
    RateCounterStore,
    RateLimiter,
    RedisRateCounterStore,
)
from apiplatform.services.scopes import DEFAULT_SCOPE_RULES, ScopeRule, rules_from_mapping
from apiplatform.services.tiers import TIERS, RateLimitConfig

log = structlog.get_logger()


class APIPlatform:
    def __init__(
        self,
        limiter: RateLimiter,
        cache: AnalyticsCache,
        hasher: Optional[KeyHasher] = None,
        scope_rules: Optional[List[ScopeRule]] = None,
        tiers: Optional[Dict[str, RateLimitConfig]] = None,
        key_prefix: str = "209w_",
        analytics_top_n: int = 10,
    ):
        self.limiter = limiter
        self.cache = cache
        self.hasher = hasher or Sha256KeyHasher()
        self.scope_rules = scope_rules if scope_rules is not None else list(DEFAULT_SCOPE_RULES)
        self.tiers = tiers if tiers is not None else dict(TIERS)
        self.key_prefix = key_prefix
        self.analytics_top_n = analytics_top_n

    def issue_key(
        self,
        db: Session,
        owner_id: str,
        name: str,
        scopes: List[str],
        tier: str,
        expires_in_days: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
    ) -> key_issuer.IssuedKey:
        return key_issuer.issue_key(
            db,
            owner_id=owner_id,
            name=name,
            scopes=scopes,
            tier=tier,
            expires_in_days=expires_in_days,
            metadata=metadata,
            actor=actor,
            hasher=self.hasher,
            key_prefix=self.key_prefix,
            tiers=self.tiers,
        )

    def set_key_status(self, db: Session, key_id: str, status: str, actor: Optional[str] = None) -> APIKey:
        return key_issuer.set_key_status(db, key_id, status, actor=actor)

    def validate(self, db: Session, raw_key: str, endpoint: str, method: str) -> validator.ValidationResult:
        return validator.validate_key(
            db,
            raw_key,
            endpoint,
            method,
            limiter=self.limiter,
            hasher=self.hasher,
            scope_rules=self.scope_rules,
            key_prefix=self.key_prefix,
        )

    def record_usage(self, db: Session, record: usage.UsageRecord) -> None:
        usage.record_usage(db, record)

    def query_analytics(
        self,
        db: Session,
        window: str,
        group_by: str = "endpoint",
        api_key_id: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> dict:
        return analytics.query_usage_analytics(
            db,
            window=window,
            group_by=group_by,
            api_key_id=api_key_id,
            owner_id=owner_id,
            top_n=self.analytics_top_n,
            cache=self.cache,
        )

    def register_webhook(
        self,
        db: Session,
        owner_id: str,
        url: str,
        events: List[str],
        secret: Optional[str] = None,
    ) -> WebhookEndpoint:
        return webhooks.register_webhook(db, owner_id, url, events, secret=secret)


def build_platform(settings: Settings, store: Optional[RateCounterStore] = None) -> APIPlatform:
    """
    Wire an APIPlatform from settings.

    With `redis_url` set, counters and the analytics cache live in Redis and
    are shared by every worker; otherwise both are process-local.
    """
    client = None
    if settings.redis_url:
        client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.counter_store_timeout_seconds,
            socket_connect_timeout=settings.counter_store_timeout_seconds,
        )

    if store is None:
        store = RedisRateCounterStore(client) if client is not None else InMemoryRateCounterStore()

    log.info(
        "platform_configured",
        environment=settings.environment,
        counter_store=type(store).__name__,
        fail_open=settings.rate_limit_fail_open,
    )

    return APIPlatform(
        limiter=RateLimiter(store, fail_open=settings.rate_limit_fail_open),
        cache=AnalyticsCache(settings.analytics_cache_ttl_seconds, client=client),
        scope_rules=list(DEFAULT_SCOPE_RULES) + rules_from_mapping(settings.extra_scope_rules),
        key_prefix=settings.key_prefix,
        analytics_top_n=settings.analytics_top_n,
    )
