# services/cache_helpers.py
"""
Short-lived cache for authorization lookups.

One PermissionCache is built per application in create_app() and kept in
app.extensions['permission_cache']. Entries expire after the configured TTL,
which bounds how long a revoked permission can still be served. Writes that
change permissions invalidate the affected keys explicitly.

The clock is injectable so expiry can be tested without sleeping.
"""

import threading
import time
from typing import Any, Callable, Hashable, Optional

DEFAULT_TTL = 300  # 5 minutes

_MISSING = object()


class PermissionCache:
    """Thread-safe TTL cache: {key: (value, expiry_timestamp)}."""

    def __init__(self, ttl: int = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("Cache TTL must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + ttl

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Get value from cache if not expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expiry = entry
            if self._clock() < expiry:
                return value
            del self._entries[key]
            return default

    def set(self, key: Hashable, value: Any, ttl: Optional[int] = None):
        """Set value in cache with expiry. Expired entries are swept once per TTL window."""
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            self._entries[key] = (value, now + (ttl or self.ttl))

    def _sweep(self, now: float):
        # Caller holds the lock
        expired = [key for key, (_, expiry) in self._entries.items() if now >= expiry]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self.ttl

    def delete(self, key: Hashable):
        with self._lock:
            self._entries.pop(key, None)

    def delete_matching(self, predicate: Callable[[Hashable], bool]) -> int:
        """Delete every key for which predicate(key) is true. Returns the count."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value, or call loader() and cache its result.

        Exceptions raised by loader propagate and nothing is cached.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        self.set(key, value)
        return value

    def __len__(self):
        with self._lock:
            now = self._clock()
            return sum(1 for _, expiry in self._entries.values() if now < expiry)


# =============================================================================
# APPLICATION ACCESS
# =============================================================================

def get_permission_cache() -> PermissionCache:
    """Get the cache owned by the current Flask application."""
    from flask import current_app

    return current_app.extensions['permission_cache']


def user_key(kind: str, user_id: int) -> tuple:
    return ('user', user_id, kind)


def org_key(kind: str, org_id: int) -> tuple:
    return ('org', org_id, kind)


def clear_user_cache(user_id: int, cache: Optional[PermissionCache] = None):
    """Clear every cached lookup for a user."""
    if cache is None:
        cache = get_permission_cache()
    cache.delete_matching(lambda key: key[:2] == ('user', user_id))


def clear_org_cache(org_id: int, cache: Optional[PermissionCache] = None):
    """Clear every cached lookup for an organization."""
    if cache is None:
        cache = get_permission_cache()
    cache.delete_matching(lambda key: key[:2] == ('org', org_id))
