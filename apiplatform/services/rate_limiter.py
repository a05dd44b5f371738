# ABOUTME: Fixed-window rate limiting backed by an atomic counter store
# ABOUTME: Provides in-memory and Redis counter stores plus the tiered minute/hour/day limiter

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

import redis
import structlog

log = structlog.get_logger()

# (window name, length in seconds, field in the key's limits)
WINDOWS = (
    ("minute", 60, "requests_per_minute"),
    ("hour", 3600, "requests_per_hour"),
    ("day", 86400, "requests_per_day"),
)


class CounterStoreUnavailable(Exception):
    """The counter store could not answer (connection error or timeout)."""


@dataclass(frozen=True)
class CounterResult:
    allowed: bool
    count: int
    remaining: int


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds of the next window boundary
    limit: int
    window: str = "minute"
    retry_after: int = 0  # whole seconds until reset_time, from the limiter's clock

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_time": self.reset_time,
            "limit": self.limit,
            "window": self.window,
            "retry_after": self.retry_after,
        }


class RateCounterStore:
    """
    Counter primitive the limiter relies on.

    increment_and_check must be a single atomic step: the counter for `key`
    is incremented only while it is below `limit`, so concurrent callers can
    never both observe "allowed" for the last remaining slot.
    """

    def increment_and_check(self, key: str, window_seconds: int, limit: int) -> CounterResult:
        raise NotImplementedError

    def acquire_slot(self, key: str, cap: int, ttl_seconds: int) -> bool:
        raise NotImplementedError

    def release_slot(self, key: str) -> None:
        raise NotImplementedError


class InMemoryRateCounterStore(RateCounterStore):
    """Process-local store for development and tests. Not shared between workers."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: dict[str, list] = {}  # key -> [count, expires_at]
        self._next_purge = 0.0

    def _purge(self, now: float) -> None:
        if now < self._next_purge:
            return
        expired = [k for k, (_, expires_at) in self._counters.items() if expires_at <= now]
        for k in expired:
            del self._counters[k]
        self._next_purge = now + 60

    def increment_and_check(self, key: str, window_seconds: int, limit: int) -> CounterResult:
        with self._lock:
            now = self._clock()
            self._purge(now)
            entry = self._counters.get(key)
            if entry is None or entry[1] <= now:
                entry = [0, now + window_seconds]
                self._counters[key] = entry
            if entry[0] >= limit:
                return CounterResult(allowed=False, count=entry[0], remaining=0)
            entry[0] += 1
            return CounterResult(allowed=True, count=entry[0], remaining=limit - entry[0])

    def acquire_slot(self, key: str, cap: int, ttl_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            entry = self._counters.get(key)
            if entry is None or entry[1] <= now:
                entry = [0, now + ttl_seconds]
                self._counters[key] = entry
            if entry[0] >= cap:
                return False
            entry[0] += 1
            entry[1] = now + ttl_seconds
            return True

    def release_slot(self, key: str) -> None:
        with self._lock:
            entry = self._counters.get(key)
            if entry is None:
                return
            entry[0] -= 1
            if entry[0] <= 0:
                del self._counters[key]


# KEYS[1] counter, ARGV[1] limit, ARGV[2] ttl
_INCREMENT_IF_BELOW = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current >= tonumber(ARGV[1]) then
    return {0, current}
end
current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return {1, current}
"""

_ACQUIRE_SLOT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current >= tonumber(ARGV[1]) then
    return 0
end
redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], ARGV[2])
return 1
"""

_RELEASE_SLOT = """
local current = redis.call('DECR', KEYS[1])
if current <= 0 then
    redis.call('DEL', KEYS[1])
end
return current
"""


class RedisRateCounterStore(RateCounterStore):
    """
    Shared store for multi-worker deployments.

    Each operation runs as a Lua script so the compare and the increment
    happen in one server-side step. Timeouts come from the client's
    socket_timeout; any redis error surfaces as CounterStoreUnavailable.
    """

    def __init__(self, client: redis.Redis):
        self.client = client
        self._increment = client.register_script(_INCREMENT_IF_BELOW)
        self._acquire = client.register_script(_ACQUIRE_SLOT)
        self._release = client.register_script(_RELEASE_SLOT)

    def increment_and_check(self, key: str, window_seconds: int, limit: int) -> CounterResult:
        try:
            allowed, count = self._increment(keys=[key], args=[limit, window_seconds])
        except redis.RedisError as e:
            raise CounterStoreUnavailable(str(e)) from e
        count = int(count)
        return CounterResult(allowed=bool(int(allowed)), count=count, remaining=max(0, limit - count))

    def acquire_slot(self, key: str, cap: int, ttl_seconds: int) -> bool:
        try:
            return bool(int(self._acquire(keys=[key], args=[cap, ttl_seconds])))
        except redis.RedisError as e:
            raise CounterStoreUnavailable(str(e)) from e

    def release_slot(self, key: str) -> None:
        try:
            self._release(keys=[key])
        except redis.RedisError as e:
            raise CounterStoreUnavailable(str(e)) from e


class RateLimiter:
    """
    Tiered fixed-window limiter.

    The window a request falls in is int(now // window_length), so counters
    for past windows are never read again and expire with their TTL.
    """

    def __init__(self, store: RateCounterStore, fail_open: bool = True, clock: Callable[[], float] = time.time):
        self.store = store
        self.fail_open = fail_open
        self._clock = clock

    def check(self, key_id: str, limits: dict) -> RateLimitStatus:
        """
        Count one request against every window of `limits`.

        Windows are checked minute, hour, day; the first exhausted one
        decides the denial. On success the minute window is reported.
        """
        now = self._clock()
        reported = None

        for window, length, field in WINDOWS:
            limit = limits[field]
            window_index = int(now // length)
            window_end = (window_index + 1) * length
            reset_time = window_end * 1000
            retry_after = max(0, math.ceil(window_end - now))
            counter_key = f"rate_limit:{key_id}:{window}:{window_index}"

            try:
                result = self.store.increment_and_check(counter_key, length, limit)
            except CounterStoreUnavailable as e:
                log.warning(
                    "rate_limit_store_unavailable",
                    api_key_id=key_id,
                    window=window,
                    fail_open=self.fail_open,
                    error=str(e),
                )
                return RateLimitStatus(
                    allowed=self.fail_open,
                    remaining=limit if self.fail_open else 0,
                    reset_time=reset_time,
                    limit=limit,
                    window=window,
                    retry_after=retry_after,
                )

            status = RateLimitStatus(
                allowed=result.allowed,
                remaining=result.remaining,
                reset_time=reset_time,
                limit=limit,
                window=window,
                retry_after=retry_after,
            )
            if not result.allowed:
                return status
            if reported is None:
                reported = status

        return reported

    def acquire_concurrency_slot(self, key_id: str, cap: int, ttl_seconds: int = 300) -> bool:
        """Reserve one in-flight request slot; the TTL bounds leaks from crashed workers."""
        try:
            return self.store.acquire_slot(f"concurrent:{key_id}", cap, ttl_seconds)
        except CounterStoreUnavailable as e:
            log.warning("concurrency_store_unavailable", api_key_id=key_id, fail_open=self.fail_open, error=str(e))
            return self.fail_open

    def release_concurrency_slot(self, key_id: str) -> None:
        try:
            self.store.release_slot(f"concurrent:{key_id}")
        except CounterStoreUnavailable as e:
            log.warning("concurrency_release_failed", api_key_id=key_id, error=str(e))
