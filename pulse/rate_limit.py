"""
rate_limit.py

last updated: 2026-10-19

One manual sync per company per window (default 60s).

The limiter stores the time of the last sync per key. Use the in-memory store
for a single process; with more than one web instance set REDIS_URL so they
share the same state.
"""

# external
import time
from typing import Optional

import redis

# internal
from pulse.settings import REDIS_URL, SYNC_RATE_LIMIT_SECONDS


class InMemoryRateLimitStore:
    """Last-sync times kept in a dict (per process)"""

    def __init__(self):
        self._last = {}

    def get_last(self, key: str) -> Optional[float]:
        return self._last.get(key)

    def set_last(self, key: str, timestamp: float, ttl: int) -> None:
        self._last[key] = timestamp


class RedisRateLimitStore:
    """Last-sync times kept in Redis, expiring with the window"""

    def __init__(self, client=None, url: Optional[str] = None, prefix: str = "pulse:sync:"):
        self.client = client or redis.Redis.from_url(
            url or REDIS_URL, decode_responses=True
        )
        self.prefix = prefix

    def get_last(self, key: str) -> Optional[float]:
        value = self.client.get(self.prefix + key)
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def set_last(self, key: str, timestamp: float, ttl: int) -> None:
        self.client.set(self.prefix + key, repr(timestamp), ex=max(1, int(ttl)))


class SyncRateLimiter:
    def __init__(self, store=None, window_seconds=SYNC_RATE_LIMIT_SECONDS, clock=time.time):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, key):
        """
        Returns:
            dict: {"allowed": bool, "retry_after": whole seconds until allowed}
        """
        try:
            last = self.store.get_last(key)
        except redis.RedisError as e:
            # a broken store shouldn't block syncing
            print(f"[RATE LIMIT] Store unavailable, allowing sync: {e}")
            return {"allowed": True, "retry_after": 0}

        if last is None:
            return {"allowed": True, "retry_after": 0}

        elapsed = self.clock() - last
        if elapsed >= self.window_seconds:
            return {"allowed": True, "retry_after": 0}

        retry_after = int(-(-(self.window_seconds - elapsed) // 1))
        return {"allowed": False, "retry_after": max(1, retry_after)}

    def record(self, key):
        try:
            self.store.set_last(key, self.clock(), self.window_seconds)
        except redis.RedisError as e:
            print(f"[RATE LIMIT] Could not record sync for {key}: {e}")

    def can_sync(self, key):
        return self.check(key)["allowed"]


def build_rate_limiter(window_seconds=SYNC_RATE_LIMIT_SECONDS):
    """Redis-backed limiter when REDIS_URL is set, in-memory otherwise"""
    if REDIS_URL:
        print("[RATE LIMIT] Using Redis store")
        return SyncRateLimiter(RedisRateLimitStore(), window_seconds=window_seconds)
    return SyncRateLimiter(InMemoryRateLimitStore(), window_seconds=window_seconds)
