# ABOUTME: Rate limit policy table per subscription tier
# ABOUTME: Keys copy these numbers at issuance; later edits do not reach existing keys

from dataclasses import dataclass


class InvalidTierError(ValueError):
    """Raised when a tier name is not in the policy table."""


@dataclass(frozen=True)
class RateLimitConfig:
    tier: str
    requests_per_minute: int
    requests_per_hour: int
    requests_per_day: int
    burst_limit: int
    concurrent_requests: int


TIERS = {
    "free": RateLimitConfig(
        tier="free",
        requests_per_minute=60,
        requests_per_hour=1_000,
        requests_per_day=10_000,
        burst_limit=10,
        concurrent_requests=5,
    ),
    "basic": RateLimitConfig(
        tier="basic",
        requests_per_minute=300,
        requests_per_hour=10_000,
        requests_per_day=100_000,
        burst_limit=50,
        concurrent_requests=20,
    ),
    "pro": RateLimitConfig(
        tier="pro",
        requests_per_minute=1_000,
        requests_per_hour=50_000,
        requests_per_day=1_000_000,
        burst_limit=200,
        concurrent_requests=100,
    ),
    "enterprise": RateLimitConfig(
        tier="enterprise",
        requests_per_minute=5_000,
        requests_per_hour=250_000,
        requests_per_day=10_000_000,
        burst_limit=1_000,
        concurrent_requests=500,
    ),
}


def get_tier(name: str, tiers: dict[str, RateLimitConfig] = TIERS) -> RateLimitConfig:
    """Look up a tier, raising InvalidTierError for unknown names."""
    try:
        return tiers[name]
    except KeyError:
        raise InvalidTierError(f"Invalid tier: {name}. Valid tiers: {', '.join(tiers)}") from None
