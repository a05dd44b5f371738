# ABOUTME: Short-lived cache for analytics query results
# ABOUTME: Uses Redis when configured, otherwise an in-process TTL dictionary

import json
import threading
import time
from typing import Any, Callable, Optional

import redis
import structlog

log = structlog.get_logger()


class AnalyticsCache:
    def __init__(self, ttl_seconds: int, client: Optional[redis.Redis] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.client = client
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss or cache failure."""
        if self.client is not None:
            try:
                raw = self.client.get(key)
            except redis.RedisError as e:
                log.warning("analytics_cache_get_failed", key=key, error=str(e))
                return None
            return json.loads(raw) if raw is not None else None

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        if self.client is not None:
            try:
                self.client.set(key, json.dumps(value), ex=self.ttl_seconds)
            except redis.RedisError as e:
                log.warning("analytics_cache_set_failed", key=key, error=str(e))
            return

        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
