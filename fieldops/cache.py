"""
Short-lived memoization of authentication lookups
Avoids re-verifying the same bearer token and reloading the user row on every request
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .config import AUTH_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

# Stale results are only served for this long after they were cached
MAX_STALE_AGE = 300
CLEANUP_INTERVAL = 60  # Sweep old entries at most once a minute


@dataclass
class CachedAuth:
    user: Any
    timestamp: float


class AuthCache:
    """In-process TTL cache keyed by access token.

    One instance is created per application and kept on ``app.state``;
    routes receive it through the ``get_auth_cache`` dependency so tests can
    swap it for a fresh instance or a controllable clock.
    """

    def __init__(
        self,
        ttl: float = AUTH_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        max_stale_age: float = MAX_STALE_AGE,
    ):
        self.ttl = ttl
        self.max_stale_age = max(max_stale_age, ttl)
        self._last_cleanup = clock()
        self._clock = clock
        self._entries: dict[str, CachedAuth] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached user if the entry is still fresh"""
        with self._lock:
            entry = self._entries.get(key)
        if entry and self._clock() - entry.timestamp < self.ttl:
            logger.debug("✅ Auth cache HIT")
            return entry.user
        logger.debug("❌ Auth cache MISS")
        return None

    def get_stale(self, key: str) -> Optional[Any]:
        """Return an expired user up to max_stale_age old (used when the lookup itself fails)"""
        with self._lock:
            entry = self._entries.get(key)
        if entry and self._clock() - entry.timestamp < self.max_stale_age:
            return entry.user
        return None

    def set(self, key: str, user: Any) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = CachedAuth(user=user, timestamp=now)
        self.cleanup_expired(now)

    def cleanup_expired(self, now: Optional[float] = None) -> int:
        """Drop entries too old to be served even as stale results"""
        now = self._clock() if now is None else now
        if now - self._last_cleanup < CLEANUP_INTERVAL:
            return 0

        with self._lock:
            expired_keys = [
                k for k, v in self._entries.items() if now - v.timestamp >= self.max_stale_age
            ]
            for k in expired_keys:
                del self._entries[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired auth cache entries")
        self._last_cleanup = now
        return len(expired_keys)

    def invalidate(self, key: str) -> bool:
        """Drop a single token (logout)"""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("🗑️ Auth cache entry invalidated")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
