# ABOUTME: SQLAlchemy database models
# ABOUTME: Defines tables for api_keys, api_usage, webhook_endpoints, and audit_logs

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Float, ForeignKey, JSON
from sqlalchemy.orm import declarative_base, relationship

from apiplatform.utils.clock import utcnow

Base = declarative_base()

KEY_STATUSES = ("active", "suspended", "revoked")
WEBHOOK_STATUSES = ("active", "disabled", "failed")


class APIKey(Base):
    """Issued API key. Rate limits are a snapshot of the tier at issuance."""
    __tablename__ = "api_keys"

    id = Column(String(40), primary_key=True)
    name = Column(Text, nullable=False)
    key_hash = Column(String(64), unique=True, nullable=False, index=True)
    key_prefix = Column(String(20), nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)
    tier = Column(String(20), nullable=False)
    scopes = Column(JSON, nullable=False, default=list)

    rate_limit_per_minute = Column(Integer, nullable=False)
    rate_limit_per_hour = Column(Integer, nullable=False)
    rate_limit_per_day = Column(Integer, nullable=False)
    burst_limit = Column(Integer, nullable=False)
    concurrent_requests = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default="active")  # active | suspended | revoked
    expires_at = Column(DateTime)
    last_used_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    extra = Column("metadata", JSON, nullable=False, default=dict)

    usage = relationship("APIUsage", back_populates="api_key")

    @property
    def rate_limits(self) -> dict:
        return {
            "requests_per_minute": self.rate_limit_per_minute,
            "requests_per_hour": self.rate_limit_per_hour,
            "requests_per_day": self.rate_limit_per_day,
        }


class APIUsage(Base):
    """One immutable fact per API request, used for analytics."""
    __tablename__ = "api_usage"

    id = Column(Integer, primary_key=True)
    api_key_id = Column(String(40), ForeignKey("api_keys.id"), nullable=False, index=True)
    endpoint = Column(Text, nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False)
    response_time_ms = Column(Integer, nullable=False, default=0)
    request_size = Column(Integer, nullable=False, default=0)
    response_size = Column(Integer, nullable=False, default=0)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    region = Column(String(64))

    api_key = relationship("APIKey", back_populates="usage")


class WebhookEndpoint(Base):
    """Outbound webhook registration with its retry policy."""
    __tablename__ = "webhook_endpoints"

    id = Column(String(40), primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True)
    url = Column(Text, nullable=False)
    events = Column(JSON, nullable=False, default=list)
    secret = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active | disabled | failed
    max_retries = Column(Integer, nullable=False, default=3)
    backoff_multiplier = Column(Float, nullable=False, default=2.0)
    max_backoff_seconds = Column(Integer, nullable=False, default=300)
    failure_count = Column(Integer, nullable=False, default=0)
    last_delivery_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def retry_policy(self) -> dict:
        return {
            "max_retries": self.max_retries,
            "backoff_multiplier": self.backoff_multiplier,
            "max_backoff_seconds": self.max_backoff_seconds,
        }


class AuditLog(Base):
    """Record of administrative actions on keys."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    actor = Column(String(64), nullable=False)
    action = Column(String(100), nullable=False, index=True)  # api_key_created, api_key_status_changed
    resource = Column(String(64), nullable=False)
    resource_id = Column(String(64))
    success = Column(Boolean, nullable=False, default=True)
    details = Column(JSON)
